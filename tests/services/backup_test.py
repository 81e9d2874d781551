import asyncio
import os
import zipfile
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from services import backup as backup_module
from services.backup import BACKUP_FOLDER_NAME, BackupManager, EmptyDataFolderError, is_file_locked


class SteppingClock:
    def __init__(self, start: datetime = datetime(2024, 6, 1, 9, 0, 0)) -> None:
        self._current = start

    def __call__(self) -> datetime:
        value = self._current
        self._current += timedelta(minutes=1)
        return value


def _populate(folder: Path) -> None:
    (folder / "Gil.txt").write_text("2024/01/01 00:00:00;1;1;;\n", encoding="utf-8")
    (folder / "Gil_SB.txt").write_text("2024/01/01 00:00:00;2;2;;\n", encoding="utf-8")
    (folder / "Exported").mkdir()
    (folder / "Exported" / "old.csv").write_text("x", encoding="utf-8")


def _seed_archives(backup_dir: Path, count: int) -> list[Path]:
    backup_dir.mkdir(parents=True, exist_ok=True)
    archives = []
    for index in range(count):
        archive = backup_dir / f"Backup_2023010100000{index}.zip"
        with zipfile.ZipFile(archive, "w"):
            pass
        stamp = datetime(2023, 1, 1).timestamp() + index * 60
        os.utime(archive, (stamp, stamp))
        archives.append(archive)
    return archives


def test_backup_archives_top_level_files_only(data_folder: Path) -> None:
    _populate(data_folder)

    archive = BackupManager(clock=SteppingClock()).backup(data_folder, 5)

    assert archive == data_folder / BACKUP_FOLDER_NAME / "Backup_20240601090000.zip"
    with zipfile.ZipFile(archive) as handle:
        assert sorted(handle.namelist()) == ["Gil.txt", "Gil_SB.txt"]
        assert handle.read("Gil.txt") == b"2024/01/01 00:00:00;1;1;;\n"


def test_backup_never_includes_previous_archives(data_folder: Path) -> None:
    _populate(data_folder)
    manager = BackupManager(clock=SteppingClock())

    manager.backup(data_folder, 0)
    second = manager.backup(data_folder, 0)

    with zipfile.ZipFile(second) as handle:
        assert all(not name.endswith(".zip") for name in handle.namelist())


def test_backup_rotation_keeps_at_most_max_count(data_folder: Path) -> None:
    _populate(data_folder)
    seeded = _seed_archives(data_folder / BACKUP_FOLDER_NAME, 4)

    archive = BackupManager(clock=SteppingClock()).backup(data_folder, 3)

    remaining = sorted((data_folder / BACKUP_FOLDER_NAME).glob("*.zip"))
    assert len(remaining) == 3
    assert archive in remaining
    assert seeded[0] not in remaining
    assert seeded[1] not in remaining
    assert seeded[2] in remaining and seeded[3] in remaining


def test_backup_with_zero_max_count_keeps_everything(data_folder: Path) -> None:
    _populate(data_folder)
    _seed_archives(data_folder / BACKUP_FOLDER_NAME, 4)

    BackupManager(clock=SteppingClock()).backup(data_folder, 0)

    assert len(list((data_folder / BACKUP_FOLDER_NAME).glob("*.zip"))) == 5


def test_locked_archives_are_skipped_not_deleted(data_folder: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _populate(data_folder)
    seeded = _seed_archives(data_folder / BACKUP_FOLDER_NAME, 3)
    monkeypatch.setattr(backup_module, "is_file_locked", lambda path: path == seeded[0])

    BackupManager(clock=SteppingClock()).backup(data_folder, 2)

    remaining = sorted((data_folder / BACKUP_FOLDER_NAME).glob("*.zip"))
    assert seeded[0] in remaining
    assert seeded[1] not in remaining
    assert seeded[2] not in remaining
    assert len(remaining) == 2


def test_all_locked_archives_survive(data_folder: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _populate(data_folder)
    seeded = _seed_archives(data_folder / BACKUP_FOLDER_NAME, 2)
    monkeypatch.setattr(backup_module, "is_file_locked", lambda path: True)

    BackupManager(clock=SteppingClock()).backup(data_folder, 1)

    remaining = list((data_folder / BACKUP_FOLDER_NAME).glob("*.zip"))
    assert all(archive in remaining for archive in seeded)
    assert len(remaining) == 3


def test_same_second_backups_get_distinct_names(data_folder: Path) -> None:
    _populate(data_folder)
    manager = BackupManager(clock=lambda: datetime(2024, 6, 1, 9, 0, 0))

    first = manager.backup(data_folder, 0)
    second = manager.backup(data_folder, 0)

    assert first.name == "Backup_20240601090000.zip"
    assert second.name == "Backup_20240601090000_1.zip"


def test_staging_folder_is_removed_when_compression_fails(
    data_folder: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _populate(data_folder)
    staging_root = tmp_path / "staging"
    staging_root.mkdir()
    monkeypatch.setattr(backup_module.tempfile, "tempdir", str(staging_root))

    def failing_compress(self, staging: Path, backup_dir: Path) -> Path:
        raise OSError("zip failed")

    monkeypatch.setattr(BackupManager, "_compress", failing_compress)

    with pytest.raises(OSError):
        BackupManager().backup(data_folder, 3)

    assert list(staging_root.iterdir()) == []


@pytest.mark.parametrize("folder", [None, "", "   "])
def test_backup_requires_data_folder(folder: str | None) -> None:
    with pytest.raises(EmptyDataFolderError):
        BackupManager().backup(folder, 3)
    with pytest.raises(EmptyDataFolderError):
        asyncio.run(BackupManager().backup_async(folder, 3))


def test_backup_async_matches_sync(data_folder: Path) -> None:
    _populate(data_folder)
    _seed_archives(data_folder / BACKUP_FOLDER_NAME, 3)

    archive = asyncio.run(BackupManager(clock=SteppingClock()).backup_async(data_folder, 2))

    assert len(list((data_folder / BACKUP_FOLDER_NAME).glob("*.zip"))) == 2
    with zipfile.ZipFile(archive) as handle:
        assert sorted(handle.namelist()) == ["Gil.txt", "Gil_SB.txt"]


def test_backup_all_covers_each_character(tmp_path: Path) -> None:
    for name in ("Alice_Tonberry", "Bob_Ragnarok"):
        folder = tmp_path / name
        folder.mkdir()
        _populate(folder)
    (tmp_path / "Empty_World").mkdir()

    archives = BackupManager(clock=SteppingClock()).backup_all(tmp_path, 3)

    assert [archive.parent.parent.name for archive in archives] == ["Alice_Tonberry", "Bob_Ragnarok"]
    assert not (tmp_path / "Empty_World" / BACKUP_FOLDER_NAME).exists()


def test_is_file_locked_reports_free_and_missing_files(tmp_path: Path) -> None:
    free = tmp_path / "free.zip"
    free.write_bytes(b"")

    assert is_file_locked(free) is False
    assert is_file_locked(tmp_path / "missing.zip") is False


@pytest.mark.skipif(os.name != "posix", reason="flock is posix only")
def test_archive_held_under_flock_survives_eviction(data_folder: Path) -> None:
    import fcntl

    _populate(data_folder)
    seeded = _seed_archives(data_folder / BACKUP_FOLDER_NAME, 3)

    with seeded[0].open("rb") as holder:
        fcntl.flock(holder.fileno(), fcntl.LOCK_EX)
        assert is_file_locked(seeded[0]) is True

        BackupManager(clock=SteppingClock()).backup(data_folder, 2)

    remaining = sorted((data_folder / BACKUP_FOLDER_NAME).glob("*.zip"))
    assert seeded[0] in remaining
    assert seeded[1] not in remaining
    assert seeded[2] not in remaining
    assert is_file_locked(seeded[0]) is False
