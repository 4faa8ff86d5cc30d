import re as _re
import typing as t

from pkgstore.config import Config, StorageConfig
from pkgstore.errors import ConfigError, StorageError

version = __version__ = "0.1.0"
__version_info__ = tuple(_re.split("[.-]", __version__))

__title__ = "pkgstore"
__summary__ = (
    "Package registry storage on Google Cloud Storage and Datastore."
)


def database(config: t.Union[StorageConfig, t.Mapping[str, t.Any], None]):
    """Construct a storage backend from a registry's store section.

    :param config: the `store` section of the registry config (camelCase
        keys), or a ready `StorageConfig`
    """
    # Imported here so that `pkgstore.config` and the CLI parser can be
    # used without loading the google client libraries.
    from pkgstore.backend import GoogleCloudDatabase

    return GoogleCloudDatabase(config)


__all__ = [
    "Config",
    "ConfigError",
    "StorageConfig",
    "StorageError",
    "__version__",
    "database",
]
