"""Tests for the pkgstore command line tool."""

import json
import logging
import sys

import pytest

from pkgstore import __main__
from pkgstore.backend import Stores
from tests.doubles import FakeBlobStore, FakeEntityStore

STORE_ARGS = ["-b", "registry", "-p", "proj", "--log-stream=none"]


@pytest.fixture(autouse=True)
def root_logger():
    logger = logging.getLogger()
    level, handlers = logger.level, list(logger.handlers)
    yield logger
    logger.setLevel(level)
    logger.handlers[:] = handlers


@pytest.fixture
def stores(monkeypatch):
    stores = Stores(FakeBlobStore(), FakeEntityStore())
    monkeypatch.setattr(
        "pkgstore.backend.create_stores", lambda config: stores
    )
    return stores


@pytest.fixture
def main(stores):
    def run(*argv):
        __main__.main([*STORE_ARGS, *argv])

    return run


def test_list(main, capsys):
    main("add", "foo")
    main("add", "bar")
    main("list")
    assert sorted(capsys.readouterr().out.split()) == ["bar", "foo"]


def test_remove(main, capsys):
    main("add", "foo")
    main("remove", "foo")
    main("list")
    assert capsys.readouterr().out == ""


def test_remove_unknown(main, capsys):
    with pytest.raises(SystemExit) as exit_:
        main("remove", "foo")
    assert exit_.value.code == 1
    assert capsys.readouterr().err == "pkgstore: error: not found\n"


def test_show(main, stores, capsys):
    stores.blobs.objects["foo/package.json"] = b'{"name": "foo"}'
    main("show", "foo")
    assert json.loads(capsys.readouterr().out) == {"name": "foo"}


def test_show_missing(main, capsys):
    with pytest.raises(SystemExit) as exit_:
        main("show", "foo")
    assert exit_.value.code == 1
    assert "no such package available" in capsys.readouterr().err


def test_upload(main, stores, tmp_path):
    tarball = tmp_path / "foo-1.0.0.tgz"
    tarball.write_bytes(b"tarball")
    main("upload", "foo", str(tarball))
    assert stores.blobs.objects["foo/foo-1.0.0.tgz"] == b"tarball"


def test_upload_as(main, stores, tmp_path):
    tarball = tmp_path / "build.tgz"
    tarball.write_bytes(b"tarball")
    main("upload", "foo", str(tarball), "--as", "foo-1.0.0.tgz")
    assert list(stores.blobs.objects) == ["foo/foo-1.0.0.tgz"]


def test_upload_existing(main, stores, tmp_path, capsys):
    stores.blobs.objects["foo/foo-1.0.0.tgz"] = b"old"
    tarball = tmp_path / "foo-1.0.0.tgz"
    tarball.write_bytes(b"new")
    with pytest.raises(SystemExit) as exit_:
        main("upload", "foo", str(tarball))
    assert exit_.value.code == 1
    assert "foo-1.0.0.tgz package already exist" in capsys.readouterr().err
    assert stores.blobs.objects["foo/foo-1.0.0.tgz"] == b"old"


def test_upload_overwrite(stores, tmp_path):
    stores.blobs.objects["foo/foo-1.0.0.tgz"] = b"old"
    tarball = tmp_path / "foo-1.0.0.tgz"
    tarball.write_bytes(b"new")
    __main__.main(
        [*STORE_ARGS, "--overwrite", "upload", "foo", str(tarball)]
    )
    assert stores.blobs.objects["foo/foo-1.0.0.tgz"] == b"new"


def test_download_to_file(main, stores, tmp_path):
    stores.blobs.objects["foo/foo-1.0.0.tgz"] = b"tarball"
    output = tmp_path / "out.tgz"
    main("download", "foo", "foo-1.0.0.tgz", "-o", str(output))
    assert output.read_bytes() == b"tarball"


def test_download_to_stdout(main, stores, capsysbinary):
    stores.blobs.objects["foo/foo-1.0.0.tgz"] = b"tarball"
    main("download", "foo", "foo-1.0.0.tgz")
    assert capsysbinary.readouterr().out == b"tarball"


def test_download_missing(main, capsys):
    with pytest.raises(SystemExit) as exit_:
        main("download", "foo", "foo-1.0.0.tgz")
    assert exit_.value.code == 1
    assert "no such package available" in capsys.readouterr().err


def test_missing_bucket(stores, capsys):
    with pytest.raises(SystemExit) as exit_:
        __main__.main(["-p", "proj", "list"])
    assert exit_.value.code == 2
    assert "requires a bucket name" in capsys.readouterr().err


def test_logging_is_configured(main, root_logger):
    main("list")
    assert root_logger.level == logging.WARNING


def test_verbose_logging(stores, root_logger):
    __main__.main(["-vv", *STORE_ARGS, "list"])
    assert root_logger.level == logging.DEBUG


class TestInitLogging:
    def test_stream_handler(self, root_logger, capsys):
        logger = logging.getLogger("pkgstore.test")
        logger.handlers[:] = []
        __main__.init_logging(
            level=logging.INFO,
            frmt="%(message)s",
            stream=sys.stderr,
            logger=logger,
        )
        logger.info("hello")
        assert capsys.readouterr().err == "hello\n"
        logger.handlers[:] = []

    def test_file_handler(self, tmp_path):
        logger = logging.getLogger("pkgstore.test.file")
        log_file = tmp_path / "pkgstore.log"
        __main__.init_logging(
            level=logging.INFO,
            frmt="%(levelname)s %(message)s",
            filename=log_file,
            stream=None,
            logger=logger,
        )
        logger.info("hello")
        for handler in logger.handlers:
            handler.close()
        logger.handlers[:] = []
        assert log_file.read_text() == "INFO hello\n"
