from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Sequence

from config import AppSettings, SettingsDataFolderProvider, config
from domain.currency import CurrencyRegistry, UnknownCurrencyError
from domain.providers import DataFolderProvider, StaticDataFolder
from domain.transaction import TIMESTAMP_FORMAT, ContainerCategory, LogContainer, Transaction, format_timestamp
from services.backup import BackupManager, EmptyDataFolderError
from services.exporter import TransactionExporter, UnsupportedExportFormatError
from services.log_operations import LogOperations
from storage.log_store import LogStore
from storage.paths import DataFolderUnavailableError, LogPathResolver
from utils.formatting import format_change

logger = logging.getLogger(__name__)

_CONTAINER_CHOICES = {
    "inventory": ContainerCategory.INVENTORY,
    "retainer": ContainerCategory.RETAINER,
    "saddlebag": ContainerCategory.SADDLE_BAG,
    "premium-saddlebag": ContainerCategory.PREMIUM_SADDLE_BAG,
}


def load_currencies(path: Path) -> CurrencyRegistry:
    raw = json.loads(path.read_text(encoding="utf-8"))
    return CurrencyRegistry(preset={int(key): str(value) for key, value in raw.items()})


def build_operations(currencies: CurrencyRegistry, data_folders: DataFolderProvider) -> LogOperations:
    resolver = LogPathResolver(currencies=currencies, data_folders=data_folders)
    return LogOperations(resolver=resolver, store=LogStore(data_folders=data_folders))


def parse_timestamp(value: str) -> datetime:
    for fmt in (TIMESTAMP_FORMAT, "%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S"):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise argparse.ArgumentTypeError(f"invalid timestamp: {value!r}")


def _container(args: argparse.Namespace) -> LogContainer:
    category = _CONTAINER_CHOICES[args.container]
    retainer_id = args.retainer_id if category is ContainerCategory.RETAINER else None
    return LogContainer(category, retainer_id)


def _select(records: list[Transaction], positions: Sequence[int]) -> list[Transaction]:
    selected: list[Transaction] = []
    for position in positions:
        if not 1 <= position <= len(records):
            raise IndexError(f"no transaction at position {position} (log has {len(records)})")
        selected.append(records[position - 1])
    return selected


def _print_records(records: Sequence[Transaction]) -> None:
    for position, record in enumerate(records, start=1):
        print(
            f"{position:>5}  {format_timestamp(record.timestamp)}  {record.amount:>12}  "
            f"{format_change(record.change):>10}  {record.location}  {record.note}"
        )


def run(args: argparse.Namespace, settings: AppSettings) -> int:
    data_folders: DataFolderProvider = (
        StaticDataFolder(args.data_folder) if args.data_folder else SettingsDataFolderProvider(settings)
    )
    if args.command == "backup":
        manager = BackupManager()
        max_count = args.max_count if args.max_count is not None else settings.max_backup_files_count
        if args.all:
            if settings.config_directory is None:
                raise EmptyDataFolderError()
            archives = manager.backup_all(settings.config_directory, max_count)
        else:
            archives = [manager.backup(data_folders.current(), max_count)]
        for archive in archives:
            print(archive)
        return 0

    currencies = load_currencies(args.currencies)
    operations = build_operations(currencies, data_folders)
    container = _container(args)

    if args.command == "show":
        _print_records(asyncio.run(operations.load_all_async(args.currency_id, container)))
    elif args.command == "latest":
        latest = operations.load_latest(args.currency_id, container)
        if latest is not None:
            _print_records([latest])
    elif args.command == "append":
        operations.append_transaction(
            args.currency_id,
            args.timestamp or datetime.now(),
            args.amount,
            args.change,
            args.location,
            args.note,
            container=container,
        )
    elif args.command == "edit":
        selected = _select(operations.load_all(args.currency_id, container), args.positions)
        failed = operations.edit_transactions(
            args.currency_id, selected, location=args.location, note=args.note, container=container
        )
        print(f"Edited {len(selected) - failed} transactions, {failed} failed")
    elif args.command == "reorder":
        operations.reorder(args.currency_id, container)
    elif args.command == "merge-threshold":
        threshold = args.threshold if args.threshold is not None else settings.merge_threshold
        merged = operations.merge_by_threshold(
            args.currency_id, threshold, one_way=args.one_way or settings.one_way_merge, container=container
        )
        print(f"Merged {merged} transactions")
    elif args.command == "merge":
        selected = _select(operations.load_all(args.currency_id, container), args.positions)
        merged = operations.merge_specific(args.currency_id, args.location, selected, note=args.note, container=container)
        print(f"Merged {merged} transactions")
    elif args.command == "export":
        exporter = TransactionExporter(currencies=currencies, data_folders=data_folders)
        export_format = args.format if args.format is not None else settings.export_file_type
        records = operations.load_all(args.currency_id, container)
        print(exporter.export(records, args.name, args.currency_id, export_format))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inspect and maintain currency transaction logs.")
    parser.add_argument("--data-folder", type=Path, help="character data folder (defaults to settings)")
    parser.add_argument("--currencies", type=Path, default=Path("currencies.json"), help="JSON map of id to name")
    parser.add_argument("--verbose", "-v", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def log_command(name: str, help_text: str) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("currency_id", type=int)
        sub.add_argument("--container", choices=sorted(_CONTAINER_CHOICES), default="inventory")
        sub.add_argument("--retainer-id", type=int)
        return sub

    log_command("show", "print every transaction of a log")
    log_command("latest", "print the latest transaction of a log")
    log_command("reorder", "sort a log by timestamp")

    append = log_command("append", "append one transaction")
    append.add_argument("amount", type=int)
    append.add_argument("change", type=int)
    append.add_argument("--location", default="")
    append.add_argument("--note", default="")
    append.add_argument("--timestamp", type=parse_timestamp)

    edit = log_command("edit", "change location or note of selected transactions")
    edit.add_argument("positions", type=int, nargs="+")
    edit.add_argument("--location")
    edit.add_argument("--note")

    threshold = log_command("merge-threshold", "merge runs of small changes at the same location")
    threshold.add_argument("--threshold", type=int)
    threshold.add_argument("--one-way", action="store_true")

    merge = log_command("merge", "merge selected transactions into one")
    merge.add_argument("positions", type=int, nargs="+")
    merge.add_argument("--location", required=True)
    merge.add_argument("--note")

    export = log_command("export", "export a log to CSV or Markdown")
    export.add_argument("--format", choices=["csv", "md"])
    export.add_argument("--name", default="")

    backup = subparsers.add_parser("backup", help="archive the character data folder")
    backup.add_argument("--max-count", type=int)
    backup.add_argument("--all", action="store_true", help="back up every character under the config directory")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    if getattr(args, "container", None) == "retainer" and args.retainer_id is None:
        parser.error("--retainer-id is required for retainer logs")

    try:
        return run(args, config())
    except (
        DataFolderUnavailableError,
        EmptyDataFolderError,
        UnknownCurrencyError,
        UnsupportedExportFormatError,
        IndexError,
        OSError,
        json.JSONDecodeError,
    ) as exc:
        logger.error("%s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
