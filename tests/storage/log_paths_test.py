from pathlib import Path

import pytest

from domain.currency import CurrencyNameConflictError, CurrencyRegistry, UnknownCurrencyError
from domain.providers import StaticDataFolder
from domain.transaction import LogContainer
from storage.paths import DataFolderUnavailableError, LogPathResolver, log_file_name
from tests.constants import GIL, POETICS, UNKNOWN_CURRENCY
from utils.formatting import sanitize_file_name


@pytest.mark.parametrize(
    "container, expected",
    [
        (LogContainer.inventory(), "Gil.txt"),
        (LogContainer.retainer(33001), "Gil_33001.txt"),
        (LogContainer.saddle_bag(), "Gil_SB.txt"),
        (LogContainer.premium_saddle_bag(), "Gil_PSB.txt"),
    ],
)
def test_resolve_appends_container_suffix(
    resolver: LogPathResolver, data_folder: Path, container: LogContainer, expected: str
) -> None:
    assert resolver.resolve(GIL, container) == data_folder / expected


def test_resolve_distinguishes_every_container(resolver: LogPathResolver) -> None:
    containers = [
        LogContainer.inventory(),
        LogContainer.retainer(1),
        LogContainer.retainer(2),
        LogContainer.saddle_bag(),
        LogContainer.premium_saddle_bag(),
    ]
    paths = {resolver.resolve(currency_id, c) for currency_id in (GIL, POETICS) for c in containers}

    assert len(paths) == 2 * len(containers)


def test_resolve_sanitizes_illegal_characters(data_folder: Path) -> None:
    resolver = LogPathResolver(
        currencies=CurrencyRegistry(preset={7: 'Wolf Marks: "PvP" <new>/old?'}),
        data_folders=StaticDataFolder(data_folder),
    )

    path = resolver.resolve(7)

    assert path.parent == data_folder
    assert path.name == "Wolf Marks_ _PvP_ _new__old_.txt"


def test_sanitize_strips_trailing_dots_and_spaces() -> None:
    assert sanitize_file_name("Gil. ") == "Gil"
    assert sanitize_file_name("...") == "_"
    assert sanitize_file_name("tab\there") == "tab_here"


def test_log_file_name_matches_resolver(resolver: LogPathResolver) -> None:
    assert resolver.resolve(POETICS, LogContainer.saddle_bag()).name == log_file_name(
        "Allagan Tomestone of Poetics", LogContainer.saddle_bag()
    )


def test_resolve_unknown_currency_raises(resolver: LogPathResolver) -> None:
    with pytest.raises(UnknownCurrencyError):
        resolver.resolve(UNKNOWN_CURRENCY)


@pytest.mark.parametrize("folder", [None, ""])
def test_resolve_without_data_folder_raises(currencies: CurrencyRegistry, folder: str | None) -> None:
    resolver = LogPathResolver(currencies=currencies, data_folders=StaticDataFolder(folder))  # type: ignore[arg-type]

    with pytest.raises(DataFolderUnavailableError):
        resolver.resolve(GIL)


def test_resolve_for_uses_explicit_folder(resolver: LogPathResolver, tmp_path: Path) -> None:
    other = tmp_path / "Bob_Ragnarok"

    assert resolver.resolve_for(other, GIL, LogContainer.retainer(5)) == other / "Gil_5.txt"


def test_custom_name_cannot_alias_another_containers_log(
    currencies: CurrencyRegistry, resolver: LogPathResolver
) -> None:
    with pytest.raises(CurrencyNameConflictError):
        currencies.add_custom(500, "Gil_SB ")

    assert 500 not in currencies.all_currencies()
    assert resolver.resolve(GIL, LogContainer.saddle_bag()).name == "Gil_SB.txt"
