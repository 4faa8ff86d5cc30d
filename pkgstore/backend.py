"""The storage backend object a registry host constructs.

`GoogleCloudDatabase` owns the two connections shared by every package
handle: a Cloud Storage bucket for documents and tarballs, and a
Datastore kind for the index of package names.
"""

import logging
import typing as t

from google.cloud import datastore, datastore_v1, storage
from google.oauth2 import service_account

from .blob_store import GoogleCloudBlobStore, IBlobStore
from .config import Config, StorageConfig
from .const import SECRET_ID, SECRET_KIND
from .entity_store import EntityStore
from .errors import (
    InternalError,
    ServiceUnavailable,
    StorageError,
    message_of,
)
from .name_index import NameIndex
from .storage import Callback, PackageStorage

log = logging.getLogger(__name__)


class Stores(t.NamedTuple):
    blobs: IBlobStore
    entities: EntityStore


def create_stores(config: StorageConfig) -> Stores:
    """Build the google clients for a config."""
    credentials = None
    if config.key_filename:
        credentials = service_account.Credentials.from_service_account_file(
            config.key_filename
        )
    storage_client = storage.Client(
        project=config.project_id, credentials=credentials
    )
    datastore_client = datastore.Client(
        project=config.project_id, credentials=credentials
    )
    log.info(
        "Connected to bucket %s and datastore kind %s in project %s",
        config.bucket,
        config.kind,
        config.project_id,
    )
    return Stores(
        blobs=GoogleCloudBlobStore(
            storage_client, config.bucket, chunk_size=config.chunk_size
        ),
        entities=EntityStore(
            datastore_client,
            datastore_v1.DatastoreClient(credentials=credentials),
        ),
    )


def _as_config(
    config: t.Union[StorageConfig, t.Mapping[str, t.Any], None]
) -> StorageConfig:
    if isinstance(config, StorageConfig):
        return config
    return Config.from_mapping(config)


class GoogleCloudDatabase:
    """Package storage backed by Cloud Storage and Datastore.

    Args:
        config: a `StorageConfig`, or the registry's store section as a
            mapping. A missing or invalid config raises `ConfigError`.
        stores: prebuilt blob and entity stores; built from the config
            when omitted.
    """

    def __init__(
        self,
        config: t.Union[StorageConfig, t.Mapping[str, t.Any], None],
        stores: t.Optional[Stores] = None,
    ):
        self.config = _as_config(config)
        self.kind = self.config.kind
        self.bucket_name = self.config.bucket
        self.stores = stores or create_stores(self.config)
        self.index = NameIndex(self.stores.entities, self.kind)

    def __repr__(self) -> str:
        return (
            f"GoogleCloudDatabase(bucket={self.bucket_name!r}, "
            f"kind={self.kind!r})"
        )

    def add(self, name: str, cb: Callback) -> None:
        try:
            self.index.add(name)
        except StorageError as err:
            return cb(err)
        cb(None)

    def remove(self, name: str, cb: Callback) -> None:
        try:
            self.index.remove(name)
        except StorageError as err:
            return cb(err)
        cb(None)

    def get(self, cb: Callback) -> None:
        try:
            names = self.index.list()
        except StorageError as err:
            return cb(err)
        cb(None, names)

    def sync(self) -> None:
        # nothing to do: every write goes straight to the remote stores
        pass

    def search(
        self,
        on_package: Callback,
        on_end: Callback,
        validate_name: t.Optional[Callback] = None,
    ) -> None:
        on_end()

    def get_package_storage(self, name: str) -> PackageStorage:
        return PackageStorage(name, self.stores.blobs, self.config)

    def get_secret(self) -> t.Optional[str]:
        try:
            entity = self.stores.entities.get(SECRET_KIND, SECRET_ID)
        except Exception as exc:
            log.error("reading the secret has failed: %s", exc)
            raise InternalError(message_of(exc)) from exc
        return entity.get("secret") if entity else None

    def set_secret(self, secret: str) -> None:
        try:
            self.stores.entities.upsert(
                SECRET_KIND, SECRET_ID, {"secret": secret}
            )
        except Exception as exc:
            log.error("saving the secret has failed: %s", exc)
            raise InternalError(message_of(exc)) from exc

    def save_token(self, token: t.Any) -> None:
        raise ServiceUnavailable("[saveToken] method not implemented")

    def delete_token(self, user: str, token_key: str) -> None:
        raise ServiceUnavailable("[deleteToken] method not implemented")

    def read_tokens(self, token_filter: t.Any) -> t.List[t.Any]:
        raise ServiceUnavailable("[readTokens] method not implemented")
