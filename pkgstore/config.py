"""Pkgstore configuration management.

The storage backend is usually constructed by a registry host, which
passes the `store` section of its own config file as a mapping with
camelCase keys (`bucket`, `projectId`, `keyFilename`, `kind`,
`validation`, `resumable`). The `pkgstore` command line tool builds the
same configuration from arguments instead.

The `Config` class is a factory class only. Config objects are instances
of `StorageConfig`. The `Config` provides the following constructors:

- `from_mapping(mapping: Optional[Mapping])`: construct a config from
  the registry's store section, applying defaults and environment
  fallbacks
- `from_args(args: Optional[Sequence[str]])`: construct a config from
  the provided arguments or `sys.argv`

Both constructors validate the result, raising `ConfigError` when the
backend could not be constructed in a valid state.

To add a config option:

- Add it to the `StorageConfig.__init__()` kwargs and set it as an
  instance attribute
- Parse it in `kwargs_from_mapping()` and `kwargs_from_namespace()`
- Add a flag for it in `add_store_args()`
- Ensure your config option is tested in `tests/test_config.py`.
"""

import argparse
import logging
import os
import sys
import typing as t

from pkgstore import const
from pkgstore.errors import ConfigError

log = logging.getLogger(__name__)


ERROR_MISSING_CONFIG = (
    "google cloud storage missing config. Add `store.google-cloud` to your "
    "config file"
)
ERROR_MISSING_BUCKET = (
    "Google Cloud Storage requires a bucket name, please define one."
)
ERROR_MISSING_PROJECT_ID = "Google Cloud Storage requires a ProjectId."


# Specify defaults here so that we can use them in tests &c. and not need
# to update things in multiple places if a default changes.
class DEFAULTS:
    """Config defaults."""

    KIND = "VerdaccioDataStore"
    VALIDATION = "crc32c"
    RESUMABLE = True
    OVERWRITE = False
    CHUNK_SIZE = 2**20  # 1 MB
    LOG_FRMT = "%(asctime)s|%(name)s|%(levelname)s|%(thread)d|%(message)s"
    LOG_STREAM = sys.stderr


VALIDATION_CHOICES = ("crc32c", "md5", "auto")
_DISABLED = ("", "0", "false", "off", "no", "none")


def validation_arg(arg: t.Any) -> t.Optional[str]:
    """Parse a checksum validation mode.

    Returns the checksum algorithm name, or None when validation is
    disabled.
    """
    if arg is None or arg is False:
        return None
    if arg is True:
        return "auto"
    value = str(arg).strip().lower()
    if value in _DISABLED:
        return None
    if value in VALIDATION_CHOICES:
        return value
    raise ConfigError(
        f"Invalid validation mode '{arg}'. Valid values are "
        f"{', '.join(VALIDATION_CHOICES)}, or false to disable validation."
    )


def bool_arg(arg: t.Any) -> bool:
    """Parse a boolean that may have been written as a string."""
    if isinstance(arg, bool):
        return arg
    value = str(arg).strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in _DISABLED:
        return False
    raise ConfigError(f"Invalid boolean value '{arg}'")


def _argparse_validation(arg: str) -> t.Optional[str]:
    try:
        return validation_arg(arg)
    except ConfigError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


# We need to capture this at compile time, because tests may replace
# sys.stderr.
_ORIG_STDERR = sys.stderr


def log_stream_arg(arg: str) -> t.Optional[t.IO]:
    """Parse the log-stream argument."""
    lower = arg.lower()
    if lower == "none":
        return None
    if lower == "stdout":
        return sys.stdout
    if lower == "stderr":
        return _ORIG_STDERR
    raise argparse.ArgumentTypeError(
        "Invalid option for --log-stream. Value must be one of stdout, "
        "stderr, or none."
    )


def add_common_args(parser: argparse.ArgumentParser) -> None:
    """Add logging and version arguments to a parser."""
    # Don't update at top-level to avoid circular imports in __init__
    from pkgstore import __version__

    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable verbose logging; repeat for more verbosity.",
    )
    parser.add_argument(
        "--log-file",
        metavar="FILE",
        help=(
            "Write logging info into this FILE, as well as to stdout or "
            "stderr, if configured."
        ),
    )
    parser.add_argument(
        "--log-stream",
        metavar="STREAM",
        default=DEFAULTS.LOG_STREAM,
        type=log_stream_arg,
        help=(
            "Log messages to the specified STREAM. Valid values are stdout, "
            "stderr, and none"
        ),
    )
    parser.add_argument(
        "--log-frmt",
        metavar="FORMAT",
        default=DEFAULTS.LOG_FRMT,
        help=(
            "The logging format-string.  (see `logging.LogRecord` class from "
            "standard python library)"
        ),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=__version__,
    )


def add_store_args(parser: argparse.ArgumentParser) -> None:
    """Add the storage backend arguments to a parser."""
    parser.add_argument(
        "-b",
        "--bucket",
        help="Name of the Google Cloud Storage bucket holding packages.",
    )
    parser.add_argument(
        "-p",
        "--project-id",
        help=(
            "Google Cloud project id. Defaults to the "
            f"{const.PROJECT_ID_ENV} environment variable."
        ),
    )
    parser.add_argument(
        "-k",
        "--key-filename",
        metavar="FILE",
        help=(
            "Service account key file. Defaults to the "
            f"{const.KEY_FILENAME_ENV} environment variable, then to the "
            "application default credentials."
        ),
    )
    parser.add_argument(
        "--kind",
        default=DEFAULTS.KIND,
        help="Datastore kind holding the package name index.",
    )
    parser.add_argument(
        "--validation",
        default=DEFAULTS.VALIDATION,
        type=_argparse_validation,
        help=(
            "Checksum used to validate uploads: crc32c, md5 or auto. Can be "
            "disabled with one of (0, no, off, false)."
        ),
    )
    parser.add_argument(
        "--no-resumable",
        dest="resumable",
        action="store_false",
        help="Upload objects in a single request instead of resumably.",
    )
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Allow overwriting existing tarballs during upload.",
    )


def get_parser() -> argparse.ArgumentParser:
    """Return an ArgumentParser."""
    parser = argparse.ArgumentParser(
        prog="pkgstore",
        description=(
            "Inspect and edit a package registry stored in Google Cloud "
            "Storage, with its package name index kept in Datastore."
        ),
    )

    add_common_args(parser)
    add_store_args(parser)

    subparsers = parser.add_subparsers(dest="cmd")
    subparsers.required = True

    subparsers.add_parser("list", help="Print every indexed package name.")

    add_parser = subparsers.add_parser(
        "add", help="Add a package name to the index."
    )
    add_parser.add_argument("name")

    remove_parser = subparsers.add_parser(
        "remove", help="Remove a package name from the index."
    )
    remove_parser.add_argument("name")

    show_parser = subparsers.add_parser(
        "show", help="Print the metadata document of a package."
    )
    show_parser.add_argument("name")

    upload_parser = subparsers.add_parser(
        "upload", help="Upload a tarball into a package."
    )
    upload_parser.add_argument("name")
    upload_parser.add_argument("file", type=argparse.FileType("rb"))
    upload_parser.add_argument(
        "--as",
        dest="artifact",
        help="Artifact name to store the file as (default: the file name).",
    )

    download_parser = subparsers.add_parser(
        "download", help="Download a tarball of a package."
    )
    download_parser.add_argument("name")
    download_parser.add_argument("artifact")
    download_parser.add_argument(
        "-o",
        "--output",
        metavar="FILE",
        help="Write the tarball into FILE instead of stdout.",
    )
    return parser


TConf = t.TypeVar("TConf", bound="StorageConfig")


class StorageConfig:
    """Configuration of the package storage backend."""

    def __init__(
        self,
        bucket: str,
        project_id: str,
        key_filename: t.Optional[str] = None,
        kind: str = DEFAULTS.KIND,
        validation: t.Optional[str] = DEFAULTS.VALIDATION,
        resumable: bool = DEFAULTS.RESUMABLE,
        overwrite: bool = DEFAULTS.OVERWRITE,
        chunk_size: int = DEFAULTS.CHUNK_SIZE,
        verbosity: int = 0,
        log_frmt: str = DEFAULTS.LOG_FRMT,
        log_file: t.Optional[str] = None,
        log_stream: t.Optional[t.IO] = DEFAULTS.LOG_STREAM,
    ) -> None:
        """Construct a StorageConfig."""
        self.bucket = bucket
        self.project_id = project_id
        self.key_filename = key_filename
        self.kind = kind
        self.validation = validation
        self.resumable = resumable
        self.overwrite = overwrite
        self.chunk_size = chunk_size
        self.verbosity = verbosity
        self.log_frmt = log_frmt
        self.log_file = log_file
        self.log_stream = log_stream

        # Derived properties are not included in equality checks.
        self._derived_properties: t.Tuple[str, ...] = ("google_options",)

    @property
    def google_options(self) -> t.Dict[str, str]:
        """Return the options used to build the google clients."""
        options = {"project": self.project_id}
        if self.key_filename:
            options["key_filename"] = self.key_filename
        return options

    @property
    def log_level(self) -> int:
        """Return an appropriate log-level for the config's verbosity."""
        levels = {
            0: logging.WARNING,
            1: logging.INFO,
            2: logging.DEBUG,
        }
        # 3 or more levels of verbosity log everything.
        return levels.get(self.verbosity, logging.NOTSET)

    def with_updates(self: TConf, **kwargs: t.Any) -> TConf:
        """Create a new config with the specified updates."""
        return self.__class__(**{**dict(self), **kwargs})

    def __repr__(self) -> str:
        """A string representation indicating the class and its properties."""
        return "{}({})".format(
            self.__class__.__name__,
            ", ".join(
                f"{k}={v}"
                for k, v in vars(self).items()
                if not k.startswith("_")
            ),
        )

    def __eq__(self, other: t.Any) -> bool:
        """Configs are equal if their public values are equal."""
        if not isinstance(other, self.__class__):
            return False
        return all(getattr(other, k) == v for k, v in self)

    def __iter__(self) -> t.Iterator[t.Tuple[str, t.Any]]:
        """Iterate over config (k, v) pairs."""
        yield from (
            (k, v)
            for k, v in vars(self).items()
            if not k.startswith("_") and k not in self._derived_properties
        )


def _resolve_project_id(project_id: t.Any) -> str:
    project_id = project_id or os.getenv(const.PROJECT_ID_ENV)
    if not project_id or not isinstance(project_id, str):
        raise ConfigError(ERROR_MISSING_PROJECT_ID)
    return project_id


def _resolve_key_filename(key_filename: t.Optional[str]) -> t.Optional[str]:
    key_filename = key_filename or os.getenv(const.KEY_FILENAME_ENV)
    if key_filename:
        log.warning(
            "Using credentials in a file might be un-secure and is "
            "recommended for local development"
        )
    return key_filename or None


class Config:
    """Config constructor for building a config from a mapping or args."""

    @classmethod
    def from_mapping(
        cls, mapping: t.Optional[t.Mapping[str, t.Any]]
    ) -> StorageConfig:
        """Construct a StorageConfig from a registry store section."""
        if mapping is None:
            raise ConfigError(ERROR_MISSING_CONFIG)
        config = StorageConfig(**cls.kwargs_from_mapping(mapping))
        log.debug("Google storage settings: %s", config.google_options)
        return config

    @staticmethod
    def kwargs_from_mapping(
        mapping: t.Mapping[str, t.Any]
    ) -> t.Dict[str, t.Any]:
        """Convert a store section into StorageConfig kwargs."""
        bucket = mapping.get("bucket")
        if not bucket:
            raise ConfigError(ERROR_MISSING_BUCKET)
        resumable = mapping.get("resumable")
        return dict(
            bucket=bucket,
            project_id=_resolve_project_id(mapping.get("projectId")),
            key_filename=_resolve_key_filename(mapping.get("keyFilename")),
            kind=mapping.get("kind") or DEFAULTS.KIND,
            validation=validation_arg(
                mapping.get("validation", DEFAULTS.VALIDATION)
            ),
            # resumable uploads are on unless explicitly shut off
            resumable=DEFAULTS.RESUMABLE
            if resumable is None
            else bool_arg(resumable),
            overwrite=bool_arg(mapping.get("overwrite", DEFAULTS.OVERWRITE)),
            chunk_size=int(mapping.get("chunkSize", DEFAULTS.CHUNK_SIZE)),
        )

    @classmethod
    def from_args(
        cls, args: t.Optional[t.Sequence[str]] = None
    ) -> t.Tuple[StorageConfig, argparse.Namespace]:
        """Construct a config from the passed args or sys.argv.

        The parsed namespace is returned alongside the config, since it
        carries the subcommand and its arguments.
        """
        args = args if args is not None else sys.argv[1:]
        parsed = get_parser().parse_args(args)
        config = StorageConfig(**cls.kwargs_from_namespace(parsed))
        log.debug("Google storage settings: %s", config.google_options)
        return config, parsed

    @staticmethod
    def kwargs_from_namespace(
        namespace: argparse.Namespace,
    ) -> t.Dict[str, t.Any]:
        """Convert a namespace into StorageConfig kwargs."""
        if not namespace.bucket:
            raise ConfigError(ERROR_MISSING_BUCKET)
        return dict(
            bucket=namespace.bucket,
            project_id=_resolve_project_id(namespace.project_id),
            key_filename=_resolve_key_filename(namespace.key_filename),
            kind=namespace.kind,
            validation=namespace.validation,
            resumable=namespace.resumable,
            overwrite=namespace.overwrite,
            verbosity=namespace.verbose,
            log_frmt=namespace.log_frmt,
            log_file=namespace.log_file,
            log_stream=namespace.log_stream,
        )
