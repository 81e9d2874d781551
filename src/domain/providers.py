from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol


class CurrencyNameProvider(Protocol):
    """Lookup interface for currency id → display name."""

    def name_of(self, currency_id: int) -> str: ...


class DataFolderProvider(Protocol):
    """Reports the data folder of the active character, or ``None`` when unset."""

    def current(self) -> Path | None: ...


class TextProvider(Protocol):
    def get_text(self, key: str, *args: object) -> str: ...


@dataclass(frozen=True)
class StaticDataFolder(DataFolderProvider):
    folder: Path | None

    def current(self) -> Path | None:
        return self.folder


DEFAULT_TEXTS: dict[str, str] = {
    "MergedSpecificHelp": "merged {0}",
    "ExportFileCSVHeader": "Time,Amount,Change,Location,Note",
    "ExportFileMDHeader": "#",
    "ExportFileMDHeader1": "| Time | Amount | Change | Location | Note |\n| --- | --- | --- | --- | --- |",
}


class TemplateTexts(TextProvider):
    """``str.format`` templates keyed by name, falling back to English defaults."""

    def __init__(self, templates: Mapping[str, str] | None = None) -> None:
        self._templates = {**DEFAULT_TEXTS, **(templates or {})}

    def get_text(self, key: str, *args: object) -> str:
        template = self._templates.get(key)
        if template is None:
            # Unknown keys show up verbatim so a missing translation stays visible.
            return key
        return template.format(*args)


__all__ = [
    "DEFAULT_TEXTS",
    "CurrencyNameProvider",
    "DataFolderProvider",
    "StaticDataFolder",
    "TemplateTexts",
    "TextProvider",
]
