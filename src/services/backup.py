from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

BACKUP_FOLDER_NAME = "Backups"
BACKUP_TIME_FORMAT = "%Y%m%d%H%M%S"


class EmptyDataFolderError(ValueError):
    def __init__(self) -> None:
        super().__init__("A data folder is required to create a backup")


def is_file_locked(path: Path) -> bool:
    """Return True when another process holds ``path`` open exclusively."""
    try:
        with path.open("r+b") as handle:
            if os.name == "posix":
                import fcntl

                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    except FileNotFoundError:
        return False
    except OSError:
        return True
    return False


def _created_at(path: Path) -> float:
    stat = path.stat()
    return getattr(stat, "st_birthtime", stat.st_mtime)


class BackupManager:
    """Rotating zip snapshots of a character's data folder.

    Only files sitting directly in the data folder are archived; the
    ``Backups`` and ``Exported`` subfolders are left out.
    """

    def __init__(self, *, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock

    def backup(self, data_folder: Path | str | None, max_count: int) -> Path:
        folder, backup_dir = self._prepare(data_folder, max_count)
        staging = Path(tempfile.mkdtemp(prefix="currency-backup-"))
        try:
            for source in _files_in(folder):
                shutil.copy2(source, staging / source.name)
            return self._compress(staging, backup_dir)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    async def backup_async(self, data_folder: Path | str | None, max_count: int) -> Path:
        folder, backup_dir = await asyncio.to_thread(self._prepare, data_folder, max_count)
        staging = Path(await asyncio.to_thread(tempfile.mkdtemp, prefix="currency-backup-"))
        try:
            for source in _files_in(folder):
                await asyncio.to_thread(shutil.copy2, source, staging / source.name)
            return await asyncio.to_thread(self._compress, staging, backup_dir)
        finally:
            await asyncio.to_thread(shutil.rmtree, staging, ignore_errors=True)

    def backup_all(self, config_directory: Path, max_count: int) -> list[Path]:
        """Back up every character folder found under ``config_directory``."""
        archives: list[Path] = []
        if not config_directory.is_dir():
            return archives
        for folder in sorted(p for p in config_directory.iterdir() if p.is_dir()):
            if not any(_files_in(folder)):
                continue
            archives.append(self.backup(folder, max_count))
        return archives

    def _prepare(self, data_folder: Path | str | None, max_count: int) -> tuple[Path, Path]:
        if data_folder is None or not str(data_folder).strip():
            raise EmptyDataFolderError()

        folder = Path(data_folder)
        backup_dir = folder / BACKUP_FOLDER_NAME
        backup_dir.mkdir(parents=True, exist_ok=True)
        if max_count > 0:
            self._evict(backup_dir, max_count)
        return folder, backup_dir

    def _evict(self, backup_dir: Path, max_count: int) -> None:
        archives = sorted(backup_dir.glob("*.zip"), key=lambda p: (_created_at(p), p.name))
        remaining = len(archives)
        for archive in archives:
            if remaining < max_count:
                break
            if is_file_locked(archive):
                logger.warning("Backup %s is locked by another process, leaving it in place", archive.name)
                continue
            archive.unlink()
            remaining -= 1
            logger.info("Removed old backup %s", archive.name)

    def _compress(self, staging: Path, backup_dir: Path) -> Path:
        stamp = self._clock().strftime(BACKUP_TIME_FORMAT)
        target = backup_dir / f"Backup_{stamp}.zip"
        attempt = 1
        while target.exists():
            target = backup_dir / f"Backup_{stamp}_{attempt}.zip"
            attempt += 1

        try:
            with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for file in sorted(staging.iterdir()):
                    archive.write(file, arcname=file.name)
        except BaseException:
            target.unlink(missing_ok=True)
            raise

        logger.info("Created backup %s", target)
        return target


def _files_in(folder: Path) -> list[Path]:
    if not folder.is_dir():
        return []
    return sorted(p for p in folder.iterdir() if p.is_file())


__all__ = ["BACKUP_FOLDER_NAME", "BackupManager", "EmptyDataFolderError", "is_file_locked"]
