#! /usr/bin/env python3
"""Entrypoint for pkgstore."""

import json
import logging
import os
import sys
import typing as t
from pathlib import Path

from pkgstore.config import Config
from pkgstore.errors import ConfigError, StorageError

log = logging.getLogger("pkgstore.main")


def init_logging(
    level: int = logging.NOTSET,
    frmt: str = None,
    filename: t.Union[str, Path] = None,
    stream: t.Optional[t.IO] = sys.stderr,
    logger: logging.Logger = None,
) -> None:
    """Configure the specified logger, or the root logger otherwise."""
    logger = logger or logging.getLogger()
    logger.setLevel(level)

    formatter = logging.Formatter(frmt)
    if len(logger.handlers) == 0 and stream is not None:
        handler = logging.StreamHandler(stream)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    if filename:
        handler = logging.FileHandler(filename)
        handler.setFormatter(formatter)
        logger.addHandler(handler)


def call(func: t.Callable, *args: t.Any) -> t.Any:
    """Call a callback-style backend method and return its result.

    The error passed to the callback, if any, is raised.
    """
    outcome: t.List[t.Any] = []
    func(*args, lambda err=None, *rest: outcome.append((err, rest)))
    err, rest = outcome[0]
    if err is not None:
        raise err
    return rest[0] if rest else None


def run_transfer(handle, *args: t.Any) -> int:
    """Drive a transfer handle to its end, raising its error if any."""
    errors: t.List[StorageError] = []
    handle.on("error", errors.append)
    handle.start(*args)
    if errors:
        raise errors[0]
    return handle.bytes_transferred


def run_command(db, args) -> None:
    """Run the parsed subcommand against a storage backend."""
    if args.cmd == "list":
        for name in call(db.get):
            print(name)
    elif args.cmd == "add":
        call(db.add, args.name)
    elif args.cmd == "remove":
        call(db.remove, args.name)
    elif args.cmd == "show":
        storage = db.get_package_storage(args.name)
        metadata = call(storage.read_package, args.name)
        print(json.dumps(metadata, indent="\t"))
    elif args.cmd == "upload":
        artifact = args.artifact or os.path.basename(args.file.name)
        storage = db.get_package_storage(args.name)
        with args.file:
            size = run_transfer(storage.write_tarball(artifact), args.file)
        log.info("uploaded %s bytes as %s/%s", size, args.name, artifact)
    elif args.cmd == "download":
        storage = db.get_package_storage(args.name)
        handle = storage.read_tarball(args.artifact)
        if args.output:
            with open(args.output, "wb") as sink:
                run_transfer(handle, sink)
        else:
            run_transfer(handle, sys.stdout.buffer)
            sys.stdout.flush()
    else:
        raise ValueError(f"Unknown command: {args.cmd}")


def main(argv: t.Sequence[str] = None) -> None:
    """Application entrypoint for pkgstore."""
    # pylint: disable=import-outside-toplevel
    from pkgstore.backend import GoogleCloudDatabase

    if argv is None:
        argv = sys.argv[1:]

    try:
        config, args = Config.from_args(argv)
    except ConfigError as exc:
        print(f"pkgstore: error: {exc}", file=sys.stderr)
        sys.exit(2)

    init_logging(
        level=config.log_level,
        filename=config.log_file,
        frmt=config.log_frmt,
        stream=config.log_stream,
    )

    try:
        run_command(GoogleCloudDatabase(config), args)
    except StorageError as exc:
        log.debug("%s failed: %r", args.cmd, exc)
        print(f"pkgstore: error: {exc.message}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
