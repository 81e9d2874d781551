from pathlib import Path

import pytest

from domain.currency import CurrencyRegistry
from domain.providers import StaticDataFolder
from services.exporter import TransactionExporter
from services.log_operations import LogOperations
from storage.log_store import LogStore
from storage.paths import LogPathResolver
from tests.constants import ALICE_FOLDER, GIL, POETICS
from tests.helpers.transactions import DEFAULT_TIME_GEN


@pytest.fixture(autouse=True)
def _reset_default_time_gen() -> None:
    DEFAULT_TIME_GEN.reset()


@pytest.fixture(scope="function")
def data_folder(tmp_path: Path) -> Path:
    folder = tmp_path / ALICE_FOLDER
    folder.mkdir()
    return folder


@pytest.fixture(scope="function")
def currencies() -> CurrencyRegistry:
    return CurrencyRegistry(preset={GIL: "Gil", POETICS: "Allagan Tomestone of Poetics"})


@pytest.fixture(scope="function")
def data_folders(data_folder: Path) -> StaticDataFolder:
    return StaticDataFolder(data_folder)


@pytest.fixture(scope="function")
def resolver(currencies: CurrencyRegistry, data_folders: StaticDataFolder) -> LogPathResolver:
    return LogPathResolver(currencies=currencies, data_folders=data_folders)


@pytest.fixture(scope="function")
def store(data_folders: StaticDataFolder) -> LogStore:
    return LogStore(data_folders=data_folders)


@pytest.fixture(scope="function")
def operations(resolver: LogPathResolver, store: LogStore) -> LogOperations:
    return LogOperations(resolver=resolver, store=store)


@pytest.fixture(scope="function")
def exporter(currencies: CurrencyRegistry, data_folders: StaticDataFolder) -> TransactionExporter:
    return TransactionExporter(currencies=currencies, data_folders=data_folders)
