"""Per-package metadata documents.

Each package owns exactly one JSON document, `<name>/package.json`, in
the blob store. Documents are written tab-indented so that revisions
diff cleanly.
"""

import json
import logging
import typing as t

from .blob_store import IBlobStore
from .const import PKG_FILE_NAME
from .errors import (
    InternalError,
    NotFound,
    StorageError,
    message_of,
    package_already_exist,
)

log = logging.getLogger(__name__)


Metadata = t.Dict[str, t.Any]
OnEnd = t.Callable[[t.Optional[StorageError]], t.Any]
UpdateHandler = t.Callable[
    [Metadata, t.Callable[[t.Optional[Exception]], None]], t.Any
]
OnWrite = t.Callable[[str, Metadata, OnEnd], t.Any]
TransformPackage = t.Callable[[Metadata], Metadata]


def file_path(name: str, file_name: str) -> str:
    return f"{name}/{file_name}"


def serialize(metadata: Metadata) -> bytes:
    return json.dumps(metadata, indent="\t").encode("utf-8")


def deserialize(content: bytes) -> Metadata:
    return json.loads(content.decode("utf-8"))


class MetadataStore:
    def __init__(
        self,
        blobs: IBlobStore,
        validation: t.Optional[str] = "crc32c",
        resumable: bool = True,
    ):
        self.blobs = blobs
        self.validation = validation
        self.resumable = resumable

    def exists(self, name: str, file_name: str) -> bool:
        path = file_path(name, file_name)
        try:
            exist = self.blobs.exists(path)
        except Exception as exc:
            log.error("check whether %s exists has failed: %s", path, exc)
            raise InternalError(message_of(exc)) from exc
        log.debug("check whether %s exists: %s", path, exist)
        return exist

    def create(self, name: str, metadata: Metadata) -> None:
        """Save the document of a new package.

        Raises Conflict if the package already has a document.
        """
        log.debug("creating new package for %s", name)
        if self.exists(name, PKG_FILE_NAME):
            log.debug("creating %s has failed, it already exist", name)
            raise package_already_exist(name)
        self.save(name, metadata)

    def save(self, name: str, metadata: Metadata) -> None:
        path = file_path(name, PKG_FILE_NAME)
        log.debug("saving package for %s", name)
        try:
            self.blobs.save(
                path,
                serialize(metadata),
                validation=self.validation,
                resumable=self.resumable,
                content_type="application/json",
            )
        except Exception as exc:
            log.error("save package %s has failed: %s", name, exc)
            raise InternalError(message_of(exc)) from exc
        log.debug("%s has been saved successfully on storage", name)

    def read(self, name: str) -> Metadata:
        """Return the document of a package.

        Any failure, including a transport failure, is reported as
        NotFound.
        """
        path = file_path(name, PKG_FILE_NAME)
        try:
            metadata = deserialize(self.blobs.download(path))
        except Exception as exc:
            log.debug("%s package not found on storage: %s", name, exc)
            raise NotFound() from exc
        log.debug("%s was found on storage", name)
        return metadata

    def update(
        self,
        name: str,
        update_handler: UpdateHandler,
        on_write: OnWrite,
        transform_package: TransformPackage,
        on_end: OnEnd,
    ) -> None:
        """Read, mutate and hand a document back for writing.

        `update_handler(metadata, done)` mutates the document and calls
        `done(err)`. On success the transformed document is passed to
        `on_write(name, metadata, on_end)`, which persists it and reports
        through `on_end`. Every outcome is reported to `on_end` once.
        Nothing is retried and no lock is taken: concurrent updates of one
        package are last-write-wins.
        """
        try:
            metadata = self.read(name)
        except NotFound as exc:
            log.error("trying to update %s and was not found on storage", name)
            on_end(exc)
            return

        finished = False
        reported = False

        def end(*args: t.Any) -> None:
            nonlocal reported
            if reported:
                log.warning("update of %s was reported more than once", name)
                return
            reported = True
            on_end(*args)

        def done(err: t.Optional[Exception] = None) -> None:
            nonlocal finished
            if finished:
                log.warning("update of %s was completed more than once", name)
                return
            finished = True
            if err:
                log.error(
                    "on write update %s package has failed: %s", name, err
                )
                end(err)
                return
            try:
                on_write(name, transform_package(metadata), end)
            except Exception as exc:
                log.error(
                    "on write update %s package has failed: %s", name, exc
                )
                end(InternalError(message_of(exc)))

        update_handler(metadata, done)

    def delete(self, name: str, file_name: str) -> t.Any:
        path = file_path(name, file_name)
        log.debug("deleting %s from storage", path)
        try:
            response = self.blobs.delete(path)
        except Exception as exc:
            log.error("delete %s file has failed: %s", path, exc)
            raise InternalError(message_of(exc)) from exc
        log.debug("%s was deleted successfully from storage", path)
        return response

    def remove_all(self, name: str) -> None:
        """Delete the package's root object.

        Artifacts stored below the root are not enumerated.
        """
        log.debug("removing the package %s from storage", name)
        try:
            self.blobs.delete(name)
        except Exception as exc:
            log.error("delete %s package has failed: %s", name, exc)
            raise InternalError(message_of(exc)) from exc
        log.debug("package %s was deleted successfully from storage", name)
