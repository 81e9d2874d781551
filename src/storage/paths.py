from __future__ import annotations

from pathlib import Path

from domain.providers import CurrencyNameProvider, DataFolderProvider
from domain.transaction import INVENTORY, LogContainer
from utils.formatting import sanitize_file_name

LOG_FILE_EXTENSION = ".txt"


class DataFolderUnavailableError(RuntimeError):
    def __init__(self) -> None:
        super().__init__("No data folder is configured for the active character")


def log_file_name(currency_name: str, container: LogContainer = INVENTORY) -> str:
    # Inventory - {name}.txt, Retainer - {name}_{id}.txt, SaddleBag - {name}_SB.txt, PremiumSaddleBag - {name}_PSB.txt
    return sanitize_file_name(f"{currency_name}{container.file_suffix}") + LOG_FILE_EXTENSION


class LogPathResolver:
    def __init__(self, *, currencies: CurrencyNameProvider, data_folders: DataFolderProvider) -> None:
        self.currencies = currencies
        self.data_folders = data_folders

    def data_folder(self) -> Path:
        folder = self.data_folders.current()
        if folder is None or not str(folder).strip():
            raise DataFolderUnavailableError()
        return Path(folder)

    def resolve(self, currency_id: int, container: LogContainer = INVENTORY) -> Path:
        return self.resolve_for(self.data_folder(), currency_id, container)

    def resolve_for(self, folder: Path, currency_id: int, container: LogContainer = INVENTORY) -> Path:
        return folder / log_file_name(self.currencies.name_of(currency_id), container)


__all__ = ["DataFolderUnavailableError", "LOG_FILE_EXTENSION", "LogPathResolver", "log_file_name"]
