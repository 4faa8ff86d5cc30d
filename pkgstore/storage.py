"""The per-package storage handle handed to the registry."""

import logging
import typing as t

from .blob_store import IBlobStore
from .config import StorageConfig
from .errors import StorageError
from .metadata import (
    Metadata,
    MetadataStore,
    OnEnd,
    OnWrite,
    TransformPackage,
    UpdateHandler,
    file_path,
)
from .transfer import ReadTarball, UploadTarball

log = logging.getLogger(__name__)


Callback = t.Callable[..., t.Any]


class PackageStorage:
    """Metadata and tarball operations scoped to one package.

    Metadata operations report through a callback called once with
    `(err)` or `(None, result)`. Tarball operations return a transfer
    handle (see `pkgstore.transfer`).
    """

    def __init__(self, name: str, blobs: IBlobStore, config: StorageConfig):
        self.name = name
        self.config = config
        self._blobs = blobs
        self.metadata = MetadataStore(
            blobs, validation=config.validation, resumable=config.resumable
        )

    def __repr__(self) -> str:
        return f"PackageStorage({self.name!r})"

    def create_package(
        self, name: str, metadata: Metadata, cb: Callback
    ) -> None:
        try:
            self.metadata.create(name, metadata)
        except StorageError as err:
            return cb(err)
        cb(None)

    def save_package(
        self, name: str, metadata: Metadata, cb: Callback
    ) -> None:
        try:
            self.metadata.save(name, metadata)
        except StorageError as err:
            return cb(err)
        cb(None)

    def read_package(self, name: str, cb: Callback) -> None:
        log.debug("reading package for %s", name)
        try:
            metadata = self.metadata.read(name)
        except StorageError as err:
            return cb(err)
        cb(None, metadata)

    def update_package(
        self,
        name: str,
        update_handler: UpdateHandler,
        on_write: OnWrite,
        transform_package: TransformPackage,
        on_end: OnEnd,
    ) -> None:
        self.metadata.update(
            name, update_handler, on_write, transform_package, on_end
        )

    def delete_package(self, file_name: str, cb: Callback) -> None:
        try:
            response = self.metadata.delete(self.name, file_name)
        except StorageError as err:
            return cb(err)
        cb(None, response)

    def remove_package(self, cb: Callback) -> None:
        try:
            self.metadata.remove_all(self.name)
        except StorageError as err:
            return cb(err)
        cb(None)

    def write_tarball(
        self, name: str, overwrite: t.Optional[bool] = None
    ) -> UploadTarball:
        return UploadTarball(
            self._blobs,
            file_path(self.name, name),
            name,
            chunk_size=self.config.chunk_size,
            validation=self.config.validation,
            resumable=self.config.resumable,
            overwrite=(
                self.config.overwrite if overwrite is None else overwrite
            ),
        )

    def read_tarball(self, name: str) -> ReadTarball:
        return ReadTarball(
            self._blobs,
            file_path(self.name, name),
            chunk_size=self.config.chunk_size,
        )
