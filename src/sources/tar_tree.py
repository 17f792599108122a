"""Streaming tar.gz extraction into a scoped temporary directory.

The archive arrives as an async iterator of compressed chunks. A worker
thread reads it through a blocking file-like bridge (so memory stays
bounded by the chunk size), decompresses it incrementally with
`tarfile`'s stream mode and writes only the entries under the requested
subpath. The directory is removed when the `extract_tree` context exits,
whatever the exit path.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import io
import logging
import shutil
import tarfile
import tempfile
import threading
import zlib
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Callable, List, Optional, Tuple

from core.errors import ArchiveFormatError, EmptyTreeError
from core.paths import split_posix

logger = logging.getLogger(__name__)

# Called with (relative_path, size); returning False skips the file.
IncludeFn = Callable[[str, int], bool]

WORKSPACE_PREFIX = "bitbucket-tree-"


@dataclass(frozen=True)
class ExtractedEntry:
    relative_path: str
    is_file: bool
    size_hint: int
    repo_path: str
    _local_path: Path = field(repr=False, compare=False)

    def read_bytes(self) -> bytes:
        if not self.is_file:
            raise IsADirectoryError(self.relative_path)
        return self._local_path.read_bytes()

    async def read(self) -> bytes:
        # Offload blocking filesystem IO to a thread to keep async loop responsive
        return await asyncio.to_thread(self.read_bytes)


class _ExtractionAborted(Exception):
    pass


class _ChunkReader(io.RawIOBase):
    """Blocking reader over an async chunk iterator, used from a worker thread.

    Each refill schedules `__anext__` on the event loop and waits for it,
    which gives natural backpressure: the network is only read as fast as
    the archive is decompressed.
    """

    def __init__(self, chunks: AsyncIterator[bytes], loop: asyncio.AbstractEventLoop) -> None:
        super().__init__()
        self._chunks = chunks
        self._loop = loop
        self._buffer = b""
        self._eof = False
        self._aborted = threading.Event()
        self._lock = threading.Lock()
        self._pending: Optional[concurrent.futures.Future] = None

    def readable(self) -> bool:
        return True

    @property
    def aborted(self) -> bool:
        return self._aborted.is_set()

    def abort(self) -> None:
        # Called from the event loop; unblocks a thread waiting on a chunk.
        with self._lock:
            self._aborted.set()
            pending = self._pending
        if pending is not None:
            pending.cancel()

    def readinto(self, b) -> int:
        while not self._buffer and not self._eof:
            self._buffer = self._next_chunk()

        n = min(len(b), len(self._buffer))
        b[:n] = self._buffer[:n]
        self._buffer = self._buffer[n:]
        return n

    def _next_chunk(self) -> bytes:
        with self._lock:
            if self._aborted.is_set():
                raise _ExtractionAborted()
            fut = asyncio.run_coroutine_threadsafe(self._anext(), self._loop)
            self._pending = fut

        try:
            chunk = fut.result()
        except concurrent.futures.CancelledError as e:
            raise _ExtractionAborted() from e
        finally:
            with self._lock:
                self._pending = None

        if chunk is None:
            self._eof = True
            return b""
        return chunk

    async def _anext(self) -> Optional[bytes]:
        try:
            return await self._chunks.__anext__()
        except StopAsyncIteration:
            return None


def _member_parts(name: str, strip_components: int) -> Optional[Tuple[str, ...]]:
    raw = (name or "").replace("\\", "/").split("/")
    if any(seg == ".." for seg in raw):
        return None
    parts = split_posix(name)[strip_components:]
    return parts or None


def _relative_parts(
    parts: Tuple[str, ...],
    prefix: Tuple[str, ...],
    *,
    is_file: bool,
) -> Optional[Tuple[str, ...]]:
    # Segment-wise prefix check so "docs" does not match "docs-old".
    if parts[: len(prefix)] != prefix:
        return None
    rel = parts[len(prefix):]
    if rel:
        return rel
    # The subpath names a single file: expose it under its own name.
    if is_file and prefix:
        return (prefix[-1],)
    return None


def _extract_members(
    reader: _ChunkReader,
    dest: Path,
    *,
    subpath: str,
    include: Optional[IncludeFn],
    strip_components: int,
) -> List[ExtractedEntry]:
    prefix = split_posix(subpath)
    entries: List[ExtractedEntry] = []
    matched_files = 0
    skipped = 0

    try:
        with tarfile.open(fileobj=reader, mode="r|gz") as archive:
            for member in archive:
                if reader.aborted:
                    raise _ExtractionAborted()

                parts = _member_parts(member.name, strip_components)
                if parts is None:
                    continue

                if not (member.isfile() or member.isdir()):
                    # Symlinks, hardlinks and devices are never materialized
                    logger.debug("Skipping non-regular archive entry %s", member.name)
                    continue

                rel = _relative_parts(parts, prefix, is_file=member.isfile())
                if rel is None:
                    skipped += 1
                    continue

                rel_path = "/".join(rel)
                target = dest.joinpath(*rel)

                if member.isdir():
                    target.mkdir(parents=True, exist_ok=True)
                    entries.append(ExtractedEntry(rel_path, False, 0, "/".join(parts), target))
                    continue

                matched_files += 1
                if include is not None and not include(rel_path, member.size):
                    continue

                src = archive.extractfile(member)
                if src is None:
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with src, open(target, "wb") as out:
                    shutil.copyfileobj(src, out)
                entries.append(ExtractedEntry(rel_path, True, int(member.size), "/".join(parts), target))
    except (tarfile.TarError, EOFError, zlib.error) as e:
        raise ArchiveFormatError(f"Invalid tar.gz archive: {e}") from e

    if not matched_files:
        raise EmptyTreeError(f"No files found under {subpath or '/'!r}")

    logger.debug("Extracted %d entries under %r (%d skipped)", len(entries), subpath, skipped)
    return sorted(entries, key=lambda entry: entry.relative_path)


async def _run_extraction(
    chunks: AsyncIterator[bytes],
    dest: Path,
    *,
    subpath: str,
    include: Optional[IncludeFn],
    strip_components: int,
) -> List[ExtractedEntry]:
    reader = _ChunkReader(chunks, asyncio.get_running_loop())
    task = asyncio.ensure_future(
        asyncio.to_thread(
            _extract_members,
            reader,
            dest,
            subpath=subpath,
            include=include,
            strip_components=strip_components,
        )
    )

    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        # Stop the worker before the directory goes away.
        reader.abort()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Extraction stopped after cancellation: %r", task.exception())
        raise


@asynccontextmanager
async def extract_tree(
    chunks: AsyncIterator[bytes],
    *,
    subpath: str = "",
    include: Optional[IncludeFn] = None,
    workspace_root: Optional[Path] = None,
    strip_components: int = 1,
) -> AsyncIterator[List[ExtractedEntry]]:
    """Extract the files under `subpath` and yield them sorted by path.

    The archive's synthetic top-level directory is dropped
    (`strip_components`). Raises ArchiveFormatError on a corrupt stream
    and EmptyTreeError when no file lives under `subpath`. Entries are
    only readable inside the context.
    """
    if workspace_root is not None:
        workspace_root.mkdir(parents=True, exist_ok=True)

    tmp_dir = tempfile.TemporaryDirectory(prefix=WORKSPACE_PREFIX, dir=workspace_root)
    try:
        dest = Path(tmp_dir.name)
        entries = await _run_extraction(
            chunks,
            dest,
            subpath=subpath,
            include=include,
            strip_components=strip_components,
        )
        yield entries
    finally:
        tmp_dir.cleanup()
