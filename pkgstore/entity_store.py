"""Thin wrapper over the Datastore key-value entity store.

No business logic lives here: every call maps onto one client call and
transport errors are propagated unchanged to the caller. Deletes and
updates go through the low-level commit API so that the count of index
rows the store touched is available to callers.
"""

import logging
import typing as t

from google.cloud import datastore, datastore_v1
from google.cloud.datastore.helpers import entity_to_protobuf
from google.cloud.datastore.query import PropertyFilter

log = logging.getLogger(__name__)


EntityId = t.Union[int, str]


class CommitResult(t.NamedTuple):
    """The outcome of a single mutation commit."""

    index_updates: int


class EntityRow(t.NamedTuple):
    id: EntityId
    name: str


class EntityStore:
    def __init__(
        self,
        client: datastore.Client,
        api: t.Optional[datastore_v1.DatastoreClient] = None,
    ):
        self.client = client
        if api is None:
            api = datastore_v1.DatastoreClient(
                credentials=getattr(client, "_credentials", None)
            )
        self.api = api

    @property
    def project(self) -> str:
        return self.client.project

    def key(self, *path: EntityId) -> datastore.Key:
        return self.client.key(*path)

    @staticmethod
    def entity_id(value: t.Any) -> EntityId:
        """Convert an id read back from a row into a key id."""
        if isinstance(value, str) and value.isdigit():
            return int(value)
        return value

    def query(self, kind: str, name_filter: t.Optional[str] = None):
        query = self.client.query(kind=kind)
        if name_filter is not None:
            query.add_filter(filter=PropertyFilter("name", "=", name_filter))
        return query

    def run(self, query) -> t.List[datastore.Entity]:
        """Run a query, returning rows in the store's native order."""
        return list(query.fetch())

    def get(self, kind: str, id: EntityId) -> t.Optional[datastore.Entity]:
        return self.client.get(self.key(kind, id))

    def upsert(
        self,
        kind: str,
        id: t.Optional[EntityId],
        data: t.Mapping[str, t.Any],
        exclude_from_indexes: t.Sequence[str] = (),
    ) -> datastore.Key:
        """Insert or replace an entity. A `None` id allocates a new one."""
        key = self.key(kind) if id is None else self.key(kind, id)
        entity = datastore.Entity(
            key=key, exclude_from_indexes=tuple(exclude_from_indexes)
        )
        entity.update(data)
        self.client.put(entity)
        return entity.key

    def update(
        self,
        kind: str,
        id: EntityId,
        data: t.Mapping[str, t.Any],
        exclude_from_indexes: t.Sequence[str] = (),
    ) -> CommitResult:
        """Replace an existing entity; the store fails if it is missing."""
        entity = datastore.Entity(
            key=self.key(kind, id),
            exclude_from_indexes=tuple(exclude_from_indexes),
        )
        entity.update(data)
        return self._commit(
            datastore_v1.Mutation(update=entity_to_protobuf(entity))
        )

    def delete(self, kind: str, id: EntityId) -> CommitResult:
        return self._commit(
            datastore_v1.Mutation(delete=self.key(kind, id).to_protobuf())
        )

    def entities(self, kind: str) -> t.List[EntityRow]:
        """Return the id and name of every named row of a kind."""
        rows = []
        for entity in self.run(self.query(kind)):
            name = entity.get("name")
            if name:
                rows.append(EntityRow(id=entity.key.id_or_name, name=name))
        return rows

    def _commit(self, mutation: datastore_v1.Mutation) -> CommitResult:
        log.debug("committing %s", mutation)
        response = self.api.commit(
            request=datastore_v1.CommitRequest(
                project_id=self.project,
                mode=datastore_v1.CommitRequest.Mode.NON_TRANSACTIONAL,
                mutations=[mutation],
            )
        )
        return CommitResult(index_updates=response.index_updates)
