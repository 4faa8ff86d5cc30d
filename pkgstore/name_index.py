"""The index of known package names.

Each known package is one row `{name}` of a fixed Datastore kind. The
store does not enforce unique names, so `remove` deletes every row
carrying the name.
"""

import logging
import typing as t

from .entity_store import CommitResult, EntityStore
from .errors import InternalError, InvariantViolation, NotFound, message_of

log = logging.getLogger(__name__)


def sanity_check(results: t.Sequence[CommitResult]) -> None:
    """Decide the outcome of removing a name from its delete results.

    No results, or a delete that updated no index rows, means nothing was
    removed. A delete that updated index rows means the name is gone. Any
    other count is malformed.
    """
    if not results:
        raise NotFound("not found")
    counts = [getattr(result, "index_updates", None) for result in results]
    if any(isinstance(c, int) and c > 0 for c in counts):
        return
    if any(c == 0 for c in counts):
        raise NotFound("not found")
    raise InvariantViolation("this should not happen")


class NameIndex:
    def __init__(self, entities: EntityStore, kind: str):
        self.entities = entities
        self.kind = kind

    def add(self, name: str) -> None:
        """Insert a row for `name`. Existing rows are not checked."""
        log.debug("adding %s to the %s index", name, self.kind)
        try:
            self.entities.upsert(self.kind, None, {"name": name})
        except Exception as exc:
            log.error("adding %s to the index has failed: %s", name, exc)
            raise InternalError(message_of(exc)) from exc

    def list(self) -> t.List[str]:
        """Return the name of every row, in store order."""
        try:
            rows = self.entities.run(self.entities.query(self.kind))
        except Exception as exc:
            log.error("listing the %s index has failed: %s", self.kind, exc)
            raise InternalError(message_of(exc)) from exc
        return [row.get("name") for row in rows]

    def remove(self, name: str) -> None:
        """Delete every row for `name`.

        Raises NotFound if nothing was removed.
        """
        log.debug("removing %s from the %s index", name, self.kind)
        try:
            rows = self.entities.entities(self.kind)
            results = []
            for row in rows:
                if row.name == name:
                    entity_id = self.entities.entity_id(row.id)
                    results.append(self.entities.delete(self.kind, entity_id))
        except Exception as exc:
            log.error("removing %s from the index has failed: %s", name, exc)
            raise InternalError(message_of(exc)) from exc
        sanity_check(results)
        log.debug("%s was removed from the %s index", name, self.kind)
