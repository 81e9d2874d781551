from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterable

from domain.providers import DataFolderProvider
from domain.transaction import MalformedRecordError, Transaction, parse, serialize

from .paths import DataFolderUnavailableError

logger = logging.getLogger(__name__)

_TAIL_BLOCK_SIZE = 4096
_BOM = b"\xef\xbb\xbf"


class LogStore:
    """Line-per-record log files.

    Reads tolerate a UTF-8 BOM and skip blank or malformed lines. Whole-file
    rewrites go through a temporary sibling file so a failed write leaves the
    previous content in place.
    """

    def __init__(self, *, data_folders: DataFolderProvider) -> None:
        self.data_folders = data_folders

    def load_all(self, path: Path) -> list[Transaction]:
        self._ensure_available()
        if not path.exists():
            return []

        return _parse_lines(path.read_bytes(), path)

    async def load_all_async(self, path: Path) -> list[Transaction]:
        self._ensure_available()
        if not path.exists():
            return []

        content = await asyncio.to_thread(path.read_bytes)
        return _parse_lines(content, path)

    def load_latest(self, path: Path) -> Transaction | None:
        self._ensure_available()
        return read_latest(path)

    def rewrite(self, path: Path, records: Iterable[Transaction]) -> None:
        self._ensure_available()
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
                for record in records:
                    handle.write(serialize(record))
                    handle.write("\n")
                handle.flush()
                os.fsync(handle.fileno())
            adopt_file_mode(Path(temp_name), path)
            os.replace(temp_name, path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise

    def append(self, path: Path, records: Iterable[Transaction]) -> None:
        self._ensure_available()
        path.parent.mkdir(parents=True, exist_ok=True)

        needs_break = path.exists() and not _ends_with_newline(path)
        with path.open("a", encoding="utf-8", newline="\n") as handle:
            if needs_break:
                handle.write("\n")
            for record in records:
                handle.write(serialize(record))
                handle.write("\n")

    def _ensure_available(self) -> None:
        folder = self.data_folders.current()
        if folder is None or not str(folder).strip():
            raise DataFolderUnavailableError()


def read_latest(path: Path) -> Transaction | None:
    """Parse the last non-blank line of ``path`` without reading the whole file."""
    line = _read_last_line(path)
    if line is None:
        return None
    try:
        return parse(line)
    except MalformedRecordError as exc:
        logger.warning("Ignoring malformed last line in %s: %s", path, exc.reason)
        return None


def _parse_lines(content: bytes, path: Path) -> list[Transaction]:
    records: list[Transaction] = []
    for number, raw in enumerate(content.removeprefix(_BOM).split(b"\n"), start=1):
        line = _decode_line(raw, path)
        if line is None or not line.strip():
            continue
        try:
            records.append(parse(line))
        except MalformedRecordError as exc:
            logger.warning("Skipping malformed line %d in %s: %s", number, path, exc.reason)
    return records


def _decode_line(raw: bytes, path: Path) -> str | None:
    try:
        return raw.decode("utf-8").rstrip("\r")
    except UnicodeDecodeError as exc:
        logger.warning("Skipping line that is not valid UTF-8 in %s: %s", path, exc.reason)
        return None


def _read_last_line(path: Path) -> str | None:
    """Return the last non-blank line, or None when the file has none or it is not valid UTF-8."""
    if not path.exists():
        return None

    with path.open("rb") as handle:
        handle.seek(0, os.SEEK_END)
        position = handle.tell()
        buffer = b""
        while position > 0:
            step = min(_TAIL_BLOCK_SIZE, position)
            position -= step
            handle.seek(position)
            buffer = handle.read(step) + buffer

            if position == 0:
                buffer = buffer.removeprefix(_BOM)
            lines = buffer.split(b"\n")
            # The first chunk may be a partial line unless we reached the start of the file.
            complete = lines if position == 0 else lines[1:]
            for raw in reversed(complete):
                if raw.strip():
                    return _decode_line(raw, path)
    return None


def adopt_file_mode(temp: Path, target: Path) -> None:
    """Give a freshly written temp file the mode ``target`` has, or would get if created normally."""
    if target.exists():
        shutil.copymode(target, temp)
        return
    umask = os.umask(0)
    os.umask(umask)
    temp.chmod(0o666 & ~umask)


def _ends_with_newline(path: Path) -> bool:
    with path.open("rb") as handle:
        handle.seek(0, os.SEEK_END)
        if handle.tell() == 0:
            return True
        handle.seek(-1, os.SEEK_END)
        return handle.read(1) == b"\n"


__all__ = ["DataFolderUnavailableError", "LogStore", "adopt_file_mode", "read_latest"]
