from __future__ import annotations

import csv
import logging
import os
import tempfile
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import Iterable

from domain.providers import CurrencyNameProvider, DataFolderProvider, TemplateTexts, TextProvider
from domain.transaction import Transaction, format_timestamp
from storage.log_store import adopt_file_mode
from storage.paths import DataFolderUnavailableError
from utils.formatting import escape_markdown_cell, sanitize_file_name

logger = logging.getLogger(__name__)

EXPORT_FOLDER_NAME = "Exported"
EXPORT_TIME_FORMAT = "%Y-%m-%d--%H-%M-%S"


class ExportFormat(IntEnum):
    CSV = 0
    MARKDOWN = 1

    @property
    def extension(self) -> str:
        return "csv" if self is ExportFormat.CSV else "md"


class UnsupportedExportFormatError(ValueError):
    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"Unsupported export format: {value!r}")


def coerce_export_format(value: ExportFormat | int | str) -> ExportFormat:
    if isinstance(value, ExportFormat):
        return value
    if isinstance(value, bool):
        raise UnsupportedExportFormatError(value)
    if isinstance(value, int):
        try:
            return ExportFormat(value)
        except ValueError as exc:
            raise UnsupportedExportFormatError(value) from exc
    if isinstance(value, str):
        key = value.strip().upper()
        if key in ("MD", "MARKDOWN"):
            return ExportFormat.MARKDOWN
        if key == "CSV":
            return ExportFormat.CSV
    raise UnsupportedExportFormatError(value)


class TransactionExporter:
    def __init__(
        self,
        *,
        currencies: CurrencyNameProvider,
        data_folders: DataFolderProvider,
        texts: TextProvider | None = None,
    ) -> None:
        self.currencies = currencies
        self.data_folders = data_folders
        self.texts = texts or TemplateTexts()

    def export(
        self,
        records: Iterable[Transaction],
        file_name_hint: str | None,
        currency_id: int,
        export_format: ExportFormat | int | str = ExportFormat.CSV,
        *,
        now: datetime | None = None,
    ) -> Path:
        fmt = coerce_export_format(export_format)
        folder = self.data_folders.current()
        if folder is None or not str(folder).strip():
            raise DataFolderUnavailableError()

        currency_name = self.currencies.name_of(currency_id)
        export_dir = Path(folder) / EXPORT_FOLDER_NAME
        export_dir.mkdir(parents=True, exist_ok=True)

        stamp = (now or datetime.now()).strftime(EXPORT_TIME_FORMAT)
        stem = f"{currency_name}_{stamp}"
        if file_name_hint and file_name_hint.strip():
            stem = f"{file_name_hint.strip()}_{stem}"
        target = export_dir / f"{sanitize_file_name(stem)}.{fmt.extension}"

        fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=export_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                if fmt is ExportFormat.CSV:
                    self._write_csv(handle, records)
                else:
                    self._write_markdown(handle, records, currency_name)
            adopt_file_mode(Path(temp_name), target)
            os.replace(temp_name, target)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise

        logger.info("Exported %s transactions to %s", currency_name, target)
        return target

    def _write_csv(self, handle, records: Iterable[Transaction]) -> None:
        writer = csv.writer(handle, lineterminator="\n")
        writer.writerow(self.texts.get_text("ExportFileCSVHeader").split(","))
        for record in records:
            writer.writerow(
                [
                    format_timestamp(record.timestamp),
                    record.amount,
                    record.change,
                    record.location,
                    record.note,
                ]
            )

    def _write_markdown(self, handle, records: Iterable[Transaction], currency_name: str) -> None:
        handle.write(f"{self.texts.get_text('ExportFileMDHeader')} {currency_name}\n\n")
        handle.write(f"{self.texts.get_text('ExportFileMDHeader1')}\n")
        for record in records:
            cells = [
                format_timestamp(record.timestamp),
                str(record.amount),
                str(record.change),
                escape_markdown_cell(record.location),
                escape_markdown_cell(record.note),
            ]
            handle.write(f"| {' | '.join(cells)} |\n")


__all__ = [
    "EXPORT_FOLDER_NAME",
    "ExportFormat",
    "TransactionExporter",
    "UnsupportedExportFormatError",
    "coerce_export_format",
]
