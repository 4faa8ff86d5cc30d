"""Streaming tarball transfers.

`UploadTarball` and `ReadTarball` are single-use handles over one
transfer. Callers register listeners with `on()`, then drive the
transfer with `start()`. Events:

- ``open``: the channel to the blob store is open
- ``content-length`` (download): the declared size of the tarball
- ``progress`` (upload): running count of bytes forwarded
- ``data`` (download): one chunk of the tarball
- ``success`` (upload) / ``end`` (download): the transfer completed
- ``error``: the transfer failed, was rejected or was aborted

Exactly one terminal event (``success``/``end`` or ``error``) is
delivered per handle and nothing is delivered after it. `abort()` may be
called at any time, from a listener or from another thread; unless the
transfer already finished it destroys the channel and delivers a single
``error``.
"""

import enum
import logging
import threading
import typing as t
from collections import defaultdict

from .blob_store import IBlobStore, ReadChannel, WriteChannel
from .const import FILE_EXIST, NO_SUCH_FILE
from .errors import (
    BadRequest,
    InternalError,
    NotFound,
    StorageError,
    message_of,
    package_already_exist,
)

log = logging.getLogger(__name__)


Source = t.Union[t.BinaryIO, t.Iterable[bytes]]


class TransferState(enum.Enum):
    CREATED = "created"
    OPENED = "opened"
    TRANSFERRING = "transferring"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"


TERMINAL_STATES = frozenset(
    (TransferState.SUCCEEDED, TransferState.FAILED, TransferState.ABORTED)
)


def iter_chunks(source: Source, chunk_size: int) -> t.Iterator[bytes]:
    """Yield the non-empty chunks of a file-like object or an iterable."""
    if hasattr(source, "read"):
        yield from iter(lambda: source.read(chunk_size), b"")  # type: ignore
        return
    for chunk in source:  # type: ignore
        if chunk:
            yield bytes(chunk)


class TransferHandle:
    """Base of both transfer directions: listeners and the state machine.

    Events are delivered under the handle's lock, which is never held
    across network I/O, so `abort()` does not wait on a running
    transfer.
    """

    direction = ""
    success_event = ""
    abort_message = "transfer aborted"

    def __init__(
        self, blobs: IBlobStore, path: str, chunk_size: int = 2**20
    ):
        self._blobs = blobs
        self.path = path
        self.chunk_size = chunk_size
        self.bytes_transferred = 0
        self._state = TransferState.CREATED
        self._listeners: t.Dict[str, t.List[t.Callable]] = defaultdict(list)
        self._lock = threading.RLock()
        self._channel: t.Optional[t.Union[ReadChannel, WriteChannel]] = None
        self._started = False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.path!r}, {self.state.value})"

    @property
    def state(self) -> TransferState:
        return self._state

    @property
    def finished(self) -> bool:
        return self._state in TERMINAL_STATES

    def on(self, event: str, listener: t.Callable) -> "TransferHandle":
        self._listeners[event].append(listener)
        return self

    def abort(self) -> None:
        """Fail the transfer, then destroy its channel."""
        channel = None
        try:
            with self._lock:
                if self.finished:
                    return
                log.warning(
                    "%s stream has been aborted for %s",
                    self.direction,
                    self.path,
                )
                channel = self._channel
                self._terminate(
                    TransferState.ABORTED,
                    "error",
                    BadRequest(self.abort_message),
                )
        finally:
            if channel is not None:
                self._destroy_channel(channel)

    def _begin(self) -> bool:
        """Mark the handle started. Returns whether the transfer may run."""
        with self._lock:
            if self._started:
                raise RuntimeError(f"{self!r} has already been started")
            self._started = True
            return not self.finished

    def _deliver(self, event: str, *args: t.Any) -> None:
        for listener in list(self._listeners[event]):
            listener(*args)

    def _transition(self, state: TransferState) -> bool:
        with self._lock:
            if self.finished:
                return False
            self._state = state
            return True

    def _terminate(
        self, state: TransferState, event: str, *args: t.Any
    ) -> bool:
        with self._lock:
            if self.finished:
                return False
            self._state = state
            self._deliver(event, *args)
            return True

    def _fail(self, err: StorageError) -> bool:
        return self._terminate(TransferState.FAILED, "error", err)

    def _succeed(self) -> bool:
        return self._terminate(TransferState.SUCCEEDED, self.success_event)

    def _destroy_channel(
        self, channel: t.Union[ReadChannel, WriteChannel]
    ) -> None:
        raise NotImplementedError(
            "Subclasses must implement `_destroy_channel`"
        )


class UploadTarball(TransferHandle):
    """Upload of one tarball into the package namespace."""

    direction = "upload"
    success_event = "success"
    abort_message = "upload aborted"

    def __init__(
        self,
        blobs: IBlobStore,
        path: str,
        name: str,
        chunk_size: int = 2**20,
        validation: t.Optional[str] = "crc32c",
        resumable: bool = True,
        overwrite: bool = False,
    ):
        super().__init__(blobs, path, chunk_size)
        self.name = name
        self.validation = validation
        self.resumable = resumable
        self.overwrite = overwrite

    def _destroy_channel(self, channel: WriteChannel) -> None:  # type: ignore
        channel.abort()

    def start(self, source: Source) -> "UploadTarball":
        """Forward `source` into the blob store.

        No byte of `source` is read when the tarball already exists.
        """
        if not self._begin():
            return self

        if not self.overwrite:
            try:
                exist = self._blobs.exists(self.path)
            except Exception as exc:
                log.error(
                    "check exist tarball %s has failed: %s", self.path, exc
                )
                self._fail(InternalError(message_of(exc)))
                return self
            if exist:
                log.debug("%s package already exist on storage", self.path)
                self._fail(package_already_exist(self.name, code=FILE_EXIST))
                return self

        log.info("the %s is being uploaded to the storage", self.path)
        try:
            channel = self._blobs.open_write(
                self.path,
                validation=self.validation,
                resumable=self.resumable,
                content_type="application/octet-stream",
            )
        except Exception as exc:
            log.error("upload stream has failed for %s: %s", self.path, exc)
            self._fail(BadRequest(message_of(exc)))
            return self

        try:
            with self._lock:
                if self.finished:
                    channel.abort()
                    return self
                self._channel = channel
                self._state = TransferState.OPENED
                log.debug("upload stream has been opened for %s", self.path)
                self._deliver("open")
            if not self._transition(TransferState.TRANSFERRING):
                return self
            for chunk in iter_chunks(source, self.chunk_size):
                with self._lock:
                    if self.finished:
                        return self
                    channel.write(chunk)
                    self.bytes_transferred += len(chunk)
                    self._deliver("progress", self.bytes_transferred)
            with self._lock:
                if self.finished:
                    return self
            # the commit talks to the store, so it runs unlocked
            channel.close()
        except Exception as exc:
            channel.abort()
            with self._lock:
                if not self.finished:
                    log.error(
                        "upload stream has failed for %s: %s", self.path, exc
                    )
                    self._fail(BadRequest(message_of(exc)))
            return self

        with self._lock:
            if not self.finished:
                log.debug(
                    "%s has been successfully uploaded to the storage",
                    self.path,
                )
                self._succeed()
        return self


class ReadTarball(TransferHandle):
    """Download of one tarball out of the package namespace."""

    direction = "download"
    success_event = "end"
    abort_message = "download aborted"

    def _destroy_channel(self, channel: ReadChannel) -> None:  # type: ignore
        channel.close()

    def _transport_error(self, exc: BaseException) -> None:
        if self.finished:
            return
        if getattr(exc, "code", None) == 404:
            log.debug("tarball %s do not found on storage", self.path)
            self._fail(NotFound(code=NO_SUCH_FILE))
        else:
            log.error(
                "tarball %s has failed to be retrieved from storage: %s",
                self.path,
                exc,
            )
            self._fail(BadRequest(message_of(exc)))

    def _check_response(
        self, channel: ReadChannel
    ) -> t.Optional[StorageError]:
        size = channel.content_length
        if channel.status == 404:
            log.debug("tarball %s do not found on storage", self.path)
            return NotFound(code=NO_SUCH_FILE)
        if channel.status >= 400:
            log.error(
                "tarball %s was answered with status %s",
                self.path,
                channel.status,
            )
            return BadRequest(f"unexpected status {channel.status}")
        if size == 0:
            log.error(
                "tarball %s was fetched from storage and it is empty",
                self.path,
            )
            return InternalError("file content empty")
        return None

    def start(self, sink: t.Optional[t.BinaryIO] = None) -> "ReadTarball":
        """Stream the tarball to the ``data`` listeners and into `sink`."""
        if not self._begin():
            return self

        log.debug("reading tarball from %s", self.path)
        try:
            channel = self._blobs.open_read(self.path)
        except Exception as exc:
            with self._lock:
                self._transport_error(exc)
            return self

        with self._lock:
            if self.finished:
                channel.close()
                return self
            self._channel = channel
            err = self._check_response(channel)
            if err is not None:
                channel.close()
                self._fail(err)
                return self

        try:
            with self._lock:
                if self.finished:
                    return self
                size = channel.content_length
                self._state = TransferState.OPENED
                if size:
                    self._deliver("open")
                    if channel.status == 200 and not self.finished:
                        self._deliver("content-length", size)
            if not self._transition(TransferState.TRANSFERRING):
                return self
            while True:
                chunk = channel.read(self.chunk_size)
                if not chunk:
                    break
                with self._lock:
                    if self.finished:
                        return self
                    self.bytes_transferred += len(chunk)
                    if sink is not None:
                        sink.write(chunk)
                    self._deliver("data", chunk)
        except Exception as exc:
            channel.close()
            with self._lock:
                self._transport_error(exc)
            return self

        channel.close()
        with self._lock:
            self._succeed()
        return self
