from __future__ import annotations

import logging
import re
from typing import Mapping

from utils.formatting import sanitize_file_name

from .providers import CurrencyNameProvider

logger = logging.getLogger(__name__)

_CONTAINER_SUFFIX = re.compile(r"_(SB|PSB|\d+)$", re.IGNORECASE)


class UnknownCurrencyError(LookupError):
    def __init__(self, currency_id: int) -> None:
        self.currency_id = currency_id
        super().__init__(f"No display name known for currency id={currency_id}")


class CurrencyNameConflictError(ValueError):
    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Currency name {name!r} rejected: {reason}")


class CurrencyRegistry(CurrencyNameProvider):
    """Preset and user-defined currency names.

    The merged view is cached per generation. Every mutation bumps the
    generation and returns ``True`` so the owner knows its persisted copy is
    dirty; callers holding an older generation refresh via :meth:`is_stale`.
    """

    def __init__(self, preset: Mapping[int, str] | None = None, custom: Mapping[int, str] | None = None) -> None:
        self._preset: dict[int, str] = dict(preset or {})
        self._custom: dict[int, str] = {k: v for k, v in (custom or {}).items() if k not in self._preset}
        self._generation = 0
        self._cache: dict[int, str] | None = None
        self._cache_generation = -1

    @property
    def generation(self) -> int:
        return self._generation

    def is_stale(self, generation: int) -> bool:
        return generation != self._generation

    def all_currencies(self) -> dict[int, str]:
        if self._cache is None or self._cache_generation != self._generation:
            self._cache = {**self._custom, **self._preset}
            self._cache_generation = self._generation
            logger.debug("Rebuilt currency map at generation %d (%d entries)", self._generation, len(self._cache))
        return dict(self._cache)

    def name_of(self, currency_id: int) -> str:
        name = self.all_currencies().get(currency_id)
        if name is None:
            raise UnknownCurrencyError(currency_id)
        return name

    @property
    def custom_currencies(self) -> dict[int, str]:
        return dict(self._custom)

    def add_custom(self, currency_id: int, name: str) -> bool:
        if currency_id in self._preset:
            return False
        if self._custom.get(currency_id) == name:
            return False
        self._validate_name(name, currency_id)
        self._custom[currency_id] = name
        self._touch()
        return True

    def rename_custom(self, currency_id: int, name: str) -> bool:
        if currency_id not in self._custom:
            raise UnknownCurrencyError(currency_id)
        return self.add_custom(currency_id, name)

    def remove_custom(self, currency_id: int) -> bool:
        if self._custom.pop(currency_id, None) is None:
            return False
        self._touch()
        return True

    def _touch(self) -> None:
        self._generation += 1

    def _validate_name(self, name: str, currency_id: int) -> None:
        # File names are derived from display names, so two currencies must never map to the same file.
        if not name.strip():
            raise CurrencyNameConflictError(name, "name must be non-blank")
        file_stem = sanitize_file_name(name)
        if _CONTAINER_SUFFIX.search(file_stem):
            raise CurrencyNameConflictError(name, "name must not end with a container suffix")
        file_stem = file_stem.casefold()
        for other_id, other_name in self.all_currencies().items():
            if other_id != currency_id and sanitize_file_name(other_name).casefold() == file_stem:
                raise CurrencyNameConflictError(name, f"clashes with currency id={other_id}")


__all__ = ["CurrencyNameConflictError", "CurrencyRegistry", "UnknownCurrencyError"]
