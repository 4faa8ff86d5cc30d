"""Blob store adapters.

The blob store holds one metadata document and any number of tarballs
per package, addressed as `<package>/<file>`. This module only
translates between the storage engine and the object store: transport
errors are propagated as raised by the client library, and callers
decide how to report them.
"""

import abc
import logging
import tempfile
import threading
import typing as t

from google.api_core import exceptions as google_exceptions

log = logging.getLogger(__name__)


class ChannelClosed(IOError):
    """The channel was closed or destroyed."""


class BlobNotFound(LookupError):
    """The requested object does not exist."""

    code = 404


class ReadChannel:
    """A byte stream out of the blob store, with its response metadata.

    A missing object is represented by a channel with a 404 `status` and
    no reader; reading from it returns no bytes.
    """

    def __init__(
        self,
        path: str,
        status: int,
        headers: t.Optional[t.Dict[str, str]] = None,
        reader: t.Optional[t.BinaryIO] = None,
    ) -> None:
        self.path = path
        self.status = status
        self.headers = headers or {}
        self._reader = reader
        self.closed = False

    @property
    def content_length(self) -> t.Optional[int]:
        size = self.headers.get("content-length")
        return None if size is None else int(size)

    def read(self, size: int = -1) -> bytes:
        if self.closed:
            raise ChannelClosed(f"read channel for {self.path} is closed")
        if self._reader is None:
            return b""
        return self._reader.read(size)

    def close(self) -> None:
        """Destroy the channel. Pending and further reads fail."""
        if self.closed:
            return
        self.closed = True
        if self._reader is not None:
            self._reader.close()
            self._reader = None


class _AbortableReader:
    """Read access to a spool that fails once its channel is aborted.

    The client library pulls the upload body through `read()` one chunk
    at a time, so an abort stops a running commit at the next chunk.
    """

    def __init__(self, spool: t.BinaryIO, channel: "WriteChannel") -> None:
        self._spool = spool
        self._channel = channel

    def read(self, size: int = -1) -> bytes:
        if self._channel.aborted:
            raise ChannelClosed(
                f"write channel for {self._channel.path} was aborted"
            )
        return self._spool.read(size)

    def tell(self) -> int:
        return self._spool.tell()

    def seek(self, offset: int, whence: int = 0) -> int:
        return self._spool.seek(offset, whence)

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True


class WriteChannel:
    """A byte sink into the blob store.

    Bytes are spooled locally and sent to the store when the channel is
    closed. `commit` is called with a reader over the spooled bytes
    (rewound) and their size. `abort()` may be called from any thread at
    any point:

    - before `close()`, the spool is dropped and the store is never touched
    - during the commit, the reader fails on its next read; a commit that
      still completes is rolled back with `discard`
    - after the commit, the stored object is removed with `discard`
    """

    OPEN = "open"
    COMMITTING = "committing"
    COMMITTED = "committed"
    CLOSED = "closed"

    def __init__(
        self,
        path: str,
        commit: t.Callable[[t.BinaryIO, int], t.Any],
        spool_size: int = 2**22,
        discard: t.Optional[t.Callable[[], t.Any]] = None,
    ) -> None:
        self.path = path
        self._commit = commit
        self._discard = discard
        self._spool = tempfile.SpooledTemporaryFile(max_size=spool_size)
        self._lock = threading.Lock()
        self.phase = self.OPEN
        self.aborted = False
        self.size = 0

    @property
    def closed(self) -> bool:
        return self.aborted or self.phase != self.OPEN

    def write(self, chunk: bytes) -> int:
        if self.closed:
            raise ChannelClosed(f"write channel for {self.path} is closed")
        written = self._spool.write(chunk)
        self.size += len(chunk)
        return written

    def close(self) -> t.Any:
        """Send the spooled bytes to the store and return its response."""
        with self._lock:
            if self.closed:
                raise ChannelClosed(
                    f"write channel for {self.path} is closed"
                )
            self.phase = self.COMMITTING
        try:
            self._spool.seek(0)
            result = self._commit(
                _AbortableReader(self._spool, self), self.size  # type: ignore
            )
        except BaseException:
            with self._lock:
                self.phase = self.CLOSED
            raise
        finally:
            self._spool.close()

        with self._lock:
            self.phase = self.COMMITTED
            aborted = self.aborted
        if aborted:
            self._rollback()
            raise ChannelClosed(f"write channel for {self.path} was aborted")
        return result

    def abort(self) -> None:
        """Make sure nothing written through this channel stays stored."""
        with self._lock:
            if self.aborted:
                return
            self.aborted = True
            phase = self.phase
        if phase == self.OPEN:
            self._spool.close()
        elif phase == self.COMMITTED:
            self._rollback()

    def _rollback(self) -> None:
        if self._discard is None:
            return
        log.warning("removing %s, its upload was aborted", self.path)
        try:
            self._discard()
        except Exception as exc:
            log.error("removing aborted %s has failed: %s", self.path, exc)


class IBlobStore(abc.ABC):
    @abc.abstractmethod
    def exists(self, path: str) -> bool:
        """Does an object by the given path exist?"""
        pass

    @abc.abstractmethod
    def open_read(self, path: str) -> ReadChannel:
        """Open a read channel on an object.

        A missing object must be reported through the channel's status
        (404), not raised.
        """
        pass

    @abc.abstractmethod
    def open_write(
        self,
        path: str,
        validation: t.Optional[str] = None,
        resumable: bool = True,
        content_type: t.Optional[str] = None,
    ) -> WriteChannel:
        """Open a write channel creating or replacing an object.

        `validation` is the checksum algorithm the store verifies the
        upload with (None to disable). `resumable` selects resumable
        uploads over single request ones.
        """
        pass

    @abc.abstractmethod
    def delete(self, path: str) -> None:
        """Delete one object."""
        pass

    def download(self, path: str) -> bytes:
        """Return the whole content of an object. When implementing a blob
        store, either use this method as is, or override it with a more
        performant version.
        """
        channel = self.open_read(path)
        try:
            if channel.status == 404:
                raise BlobNotFound(path)
            return channel.read()
        finally:
            channel.close()

    def save(
        self,
        path: str,
        data: bytes,
        validation: t.Optional[str] = None,
        resumable: bool = True,
        content_type: t.Optional[str] = None,
    ) -> t.Any:
        """Write a whole object in one go."""
        channel = self.open_write(
            path,
            validation=validation,
            resumable=resumable,
            content_type=content_type,
        )
        try:
            channel.write(data)
        except Exception:
            channel.abort()
            raise
        return channel.close()


# resumable upload requests must carry a multiple of 256 KiB
UPLOAD_CHUNK_UNIT = 256 * 1024


def upload_chunk_size(chunk_size: int) -> int:
    """Round a chunk size up to what resumable uploads accept."""
    units = max(1, -(-chunk_size // UPLOAD_CHUNK_UNIT))
    return units * UPLOAD_CHUNK_UNIT


class GoogleCloudBlobStore(IBlobStore):
    """Blob store backed by a Google Cloud Storage bucket."""

    def __init__(self, client, bucket_name: str, chunk_size: int = 2**20):
        self._client = client
        self.bucket_name = bucket_name
        self.chunk_size = chunk_size

    @property
    def bucket(self):
        return self._client.bucket(self.bucket_name)

    def exists(self, path: str) -> bool:
        log.debug("gs://%s/%s -> exists?", self.bucket_name, path)
        return self.bucket.blob(path).exists()

    def open_read(self, path: str) -> ReadChannel:
        log.debug("gs://%s/%s -> r", self.bucket_name, path)
        blob = self.bucket.get_blob(path)
        if blob is None:
            return ReadChannel(path, status=404)
        headers = {}
        if blob.size is not None:
            headers["content-length"] = str(blob.size)
        reader = None
        if blob.size:
            reader = blob.open("rb", chunk_size=self.chunk_size)
        return ReadChannel(path, status=200, headers=headers, reader=reader)

    def open_write(
        self,
        path: str,
        validation: t.Optional[str] = None,
        resumable: bool = True,
        content_type: t.Optional[str] = None,
    ) -> WriteChannel:
        log.debug(
            "w -> gs://%s/%s (validation=%s, resumable=%s)",
            self.bucket_name,
            path,
            validation,
            resumable,
        )
        blob = self.bucket.blob(
            path, chunk_size=upload_chunk_size(self.chunk_size)
        )

        def commit(stream: t.BinaryIO, size: int):
            # Without a size the library always picks a resumable upload,
            # pulling the body from `stream` one chunk per request; with one
            # it sends small objects in a single request.
            return blob.upload_from_file(
                stream,
                size=None if resumable else size,
                content_type=content_type,
                checksum=validation,
            )

        def discard():
            # only remove the generation this channel wrote
            blob.delete(if_generation_match=blob.generation)

        return WriteChannel(
            path, commit, spool_size=self.chunk_size * 4, discard=discard
        )

    def delete(self, path: str) -> None:
        log.debug("gs://%s/%s -> x", self.bucket_name, path)
        self.bucket.blob(path).delete()

    def download(self, path: str) -> bytes:
        log.debug("gs://%s/%s -> bytes", self.bucket_name, path)
        try:
            return self.bucket.blob(path).download_as_bytes()
        except google_exceptions.NotFound as exc:
            raise BlobNotFound(path) from exc
