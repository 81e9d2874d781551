from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Sequence

from domain.character import CharacterInfo
from domain.currency import UnknownCurrencyError
from domain.providers import TemplateTexts, TextProvider
from domain.transaction import INVENTORY, LogContainer, Transaction
from storage.log_store import LogStore, read_latest
from storage.paths import DataFolderUnavailableError, LogPathResolver

logger = logging.getLogger(__name__)

MERGED_NOTE_KEY = "MergedSpecificHelp"


class LogOperations:
    """Edits, merges and reorders the log of one (currency, container) pair.

    Records are matched by value: each selected record is located by scanning
    the whole file for an equal one, so every match costs O(n) in the file
    length. Failures to locate the data folder or the currency name are
    logged and reported as ``0``/``None``/``[]`` rather than raised.
    """

    def __init__(
        self,
        *,
        resolver: LogPathResolver,
        store: LogStore,
        texts: TextProvider | None = None,
    ) -> None:
        self.resolver = resolver
        self.store = store
        self.texts = texts or TemplateTexts()

    def load_all(self, currency_id: int, container: LogContainer = INVENTORY) -> list[Transaction]:
        path = self._path(currency_id, container)
        if path is None:
            return []
        return self.store.load_all(path)

    async def load_all_async(self, currency_id: int, container: LogContainer = INVENTORY) -> list[Transaction]:
        path = self._path(currency_id, container)
        if path is None:
            return []
        return await self.store.load_all_async(path)

    def load_latest(self, currency_id: int, container: LogContainer = INVENTORY) -> Transaction | None:
        path = self._path(currency_id, container)
        if path is None:
            return None
        return self.store.load_latest(path)

    def load_latest_for_character(
        self,
        currency_id: int,
        character: CharacterInfo,
        config_directory: Path,
        container: LogContainer = INVENTORY,
    ) -> Transaction | None:
        """Latest record of a log owned by ``character``, active or not."""
        try:
            path = self.resolver.resolve_for(character.data_folder(config_directory), currency_id, container)
        except UnknownCurrencyError as exc:
            logger.warning("Cannot load latest transaction: %s", exc)
            return None
        return read_latest(path)

    def edit_transactions(
        self,
        currency_id: int,
        selected: Sequence[Transaction],
        *,
        location: str | None = None,
        note: str | None = None,
        container: LogContainer = INVENTORY,
    ) -> int:
        """Overwrite location and/or note of each selected record; return how many were not found."""
        if not selected:
            return 0

        path = self._path(currency_id, container)
        if path is None:
            return len(selected)

        transactions = self.store.load_all(path)
        failed = 0
        for target in selected:
            index = _find_index(transactions, target)
            if index is None:
                failed += 1
                continue
            if location is not None:
                transactions[index].location = location
            if note is not None:
                transactions[index].note = note

        self.store.rewrite(path, transactions)
        logger.info("Edited %d transactions in %s (%d not found)", len(selected) - failed, path.name, failed)
        return failed

    def append_transaction(
        self,
        currency_id: int,
        timestamp: datetime,
        amount: int,
        change: int,
        location: str = "",
        note: str = "",
        *,
        container: LogContainer = INVENTORY,
    ) -> bool:
        path = self._path(currency_id, container)
        if path is None:
            return False

        record = Transaction(timestamp=timestamp, amount=amount, change=change, location=location, note=note)
        self.store.append(path, [record])
        return True

    def add_transaction(
        self,
        currency_id: int,
        timestamp: datetime,
        amount: int,
        change: int,
        location: str = "",
        note: str = "",
        *,
        container: LogContainer = INVENTORY,
    ) -> bool:
        """Start a log with a single record, replacing whatever the file held."""
        path = self._path(currency_id, container)
        if path is None:
            return False

        record = Transaction(timestamp=timestamp, amount=amount, change=change, location=location, note=note)
        self.store.rewrite(path, [record])
        logger.info("Created %s with its first transaction", path.name)
        return True

    def reorder(self, currency_id: int, container: LogContainer = INVENTORY) -> bool:
        path = self._path(currency_id, container)
        if path is None:
            return False

        # sorted() is stable, so equal timestamps keep their file order.
        transactions = sorted(self.store.load_all(path), key=lambda t: t.timestamp)
        self.store.rewrite(path, transactions)
        return True

    def merge_by_threshold(
        self,
        currency_id: int,
        threshold: int,
        *,
        one_way: bool = False,
        container: LogContainer = INVENTORY,
    ) -> int:
        """Collapse runs of small same-location changes into their first record.

        A record is absorbed into the running anchor while it shares the
        anchor's location, ``abs(change) < threshold`` and, with ``one_way``,
        both changes have the same sign (zero counts as positive). Each
        absorption adds 2 to the returned count, one for the anchor and one
        for the absorbed record, so a run of three records reports 4.
        """
        path = self._path(currency_id, container)
        if path is None:
            return 0

        transactions = self.store.load_all(path)
        if len(transactions) <= 1:
            return 0

        merged: list[Transaction] = []
        merged_count = 0
        index = 0
        while index < len(transactions):
            anchor = transactions[index]
            absorbed = 0
            index += 1
            while index < len(transactions) and _absorbable(anchor, transactions[index], threshold, one_way):
                following = transactions[index]
                if following.timestamp > anchor.timestamp:
                    anchor.amount = following.amount
                    anchor.timestamp = following.timestamp
                anchor.change += following.change
                merged_count += 2
                absorbed += 1
                index += 1

            if absorbed > 0:
                anchor.note = self.merged_note(absorbed + 1)
            merged.append(anchor)

        self.store.rewrite(path, merged)
        self.reorder(currency_id, container)
        logger.info("Threshold merge on %s folded %d records into %d", path.name, len(transactions), len(merged))
        return merged_count

    def merge_specific(
        self,
        currency_id: int,
        location: str,
        selected: Sequence[Transaction],
        *,
        note: str | None = None,
        container: LogContainer = INVENTORY,
    ) -> int:
        """Replace the selected records with one record summing their changes.

        The merged record takes amount and timestamp from the latest selected
        record. Returns the number of records merged, or 0 when fewer than two
        of the selection exist in the file.
        """
        if len(selected) <= 1:
            return 0

        path = self._path(currency_id, container)
        if path is None:
            return 0

        transactions = self.store.load_all(path)
        latest: Transaction | None = None
        overall_change = 0
        merged_count = 0
        for target in selected:
            index = _find_index(transactions, target)
            if index is None:
                continue
            found = transactions.pop(index)
            if latest is None or found.timestamp > latest.timestamp:
                latest = found
            overall_change += found.change
            merged_count += 1

        if latest is None or merged_count <= 1:
            logger.info("Nothing to merge in %s: %d of %d selected records found", path.name, merged_count, len(selected))
            return 0

        transactions.append(
            Transaction(
                timestamp=latest.timestamp,
                amount=latest.amount,
                change=overall_change,
                location=location,
                note=note if note is not None else self.merged_note(merged_count),
            )
        )
        self.store.rewrite(path, transactions)
        self.reorder(currency_id, container)
        logger.info("Merged %d selected transactions in %s", merged_count, path.name)
        return merged_count

    def merged_note(self, count: int) -> str:
        return self.texts.get_text(MERGED_NOTE_KEY, count)

    def _path(self, currency_id: int, container: LogContainer) -> Path | None:
        try:
            return self.resolver.resolve(currency_id, container)
        except DataFolderUnavailableError:
            logger.warning("Player data folder missing, skipping log access for currency id=%s", currency_id)
        except UnknownCurrencyError as exc:
            logger.warning("Cannot resolve log file: %s", exc)
        return None


def _find_index(transactions: list[Transaction], target: Transaction) -> int | None:
    for index, transaction in enumerate(transactions):
        if transaction == target:
            return index
    return None


def _absorbable(anchor: Transaction, following: Transaction, threshold: int, one_way: bool) -> bool:
    if following.location != anchor.location or abs(following.change) >= threshold:
        return False
    if one_way:
        return (anchor.change >= 0) == (following.change >= 0)
    return True


__all__ = ["LogOperations", "MERGED_NOTE_KEY"]
