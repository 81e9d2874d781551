from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator

TIMESTAMP_FORMAT = "%Y/%m/%d %H:%M:%S"
FIELD_SEPARATOR = ";"

_ESCAPES = {"\\": "\\\\", FIELD_SEPARATOR: "\\;", "\n": "\\n", "\r": "\\r"}
_UNESCAPES = {"\\": "\\", ";": ";", "n": "\n", "r": "\r"}


class MalformedRecordError(ValueError):
    def __init__(self, line: str, reason: str) -> None:
        self.line = line
        self.reason = reason
        super().__init__(f"Malformed transaction line ({reason}): {line!r}")


class ContainerCategory(StrEnum):
    INVENTORY = "INVENTORY"
    RETAINER = "RETAINER"
    SADDLE_BAG = "SADDLE_BAG"
    PREMIUM_SADDLE_BAG = "PREMIUM_SADDLE_BAG"


@dataclass(frozen=True)
class LogContainer:
    """Where a balance is held. ``retainer_id`` only exists for retainers."""

    category: ContainerCategory = ContainerCategory.INVENTORY
    retainer_id: int | None = None

    def __post_init__(self) -> None:
        if self.category is ContainerCategory.RETAINER:
            if self.retainer_id is None or self.retainer_id < 0:
                msg = "retainer containers require a non-negative retainer_id"
                raise ValueError(msg)
        elif self.retainer_id is not None:
            msg = f"{self.category} containers do not take a retainer_id"
            raise ValueError(msg)

    @classmethod
    def inventory(cls) -> LogContainer:
        return cls(ContainerCategory.INVENTORY)

    @classmethod
    def retainer(cls, retainer_id: int) -> LogContainer:
        return cls(ContainerCategory.RETAINER, retainer_id)

    @classmethod
    def saddle_bag(cls) -> LogContainer:
        return cls(ContainerCategory.SADDLE_BAG)

    @classmethod
    def premium_saddle_bag(cls) -> LogContainer:
        return cls(ContainerCategory.PREMIUM_SADDLE_BAG)

    @property
    def file_suffix(self) -> str:
        match self.category:
            case ContainerCategory.RETAINER:
                return f"_{self.retainer_id}"
            case ContainerCategory.SADDLE_BAG:
                return "_SB"
            case ContainerCategory.PREMIUM_SADDLE_BAG:
                return "_PSB"
            case _:
                return ""


INVENTORY = LogContainer.inventory()


class Transaction(BaseModel):
    """One observed balance of a currency.

    ``change`` is stored as observed and is never derived from neighbouring
    ``amount`` values, except by the merge operations.
    """

    model_config = ConfigDict(validate_assignment=True)

    timestamp: datetime
    amount: int
    change: int
    location: str = ""
    note: str = ""

    @field_validator("timestamp")
    @classmethod
    def _whole_seconds(cls, value: datetime) -> datetime:
        if value.tzinfo is not None:
            value = value.astimezone().replace(tzinfo=None)
        return value.replace(microsecond=0)

    @field_validator("note")
    @classmethod
    def _blank_note(cls, value: str) -> str:
        return "" if not value.strip() else value

    def to_line(self) -> str:
        return serialize(self)

    @classmethod
    def from_line(cls, line: str) -> Transaction:
        return parse(line)


def _escape(value: str) -> str:
    return "".join(_ESCAPES.get(char, char) for char in value)


def _split_fields(line: str) -> list[str]:
    fields: list[str] = []
    current: list[str] = []
    chars = iter(line)
    for char in chars:
        if char == "\\":
            escaped = next(chars, None)
            if escaped is None or escaped not in _UNESCAPES:
                raise MalformedRecordError(line, "invalid escape sequence")
            current.append(_UNESCAPES[escaped])
        elif char == FIELD_SEPARATOR:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
    fields.append("".join(current))
    return fields


def format_timestamp(value: datetime) -> str:
    # strftime("%Y") does not zero-pad years below 1000 on every platform, strptime needs four digits.
    return f"{value.year:04d}/{value:%m/%d %H:%M:%S}"


def serialize(record: Transaction) -> str:
    return FIELD_SEPARATOR.join(
        [
            format_timestamp(record.timestamp),
            str(record.amount),
            str(record.change),
            _escape(record.location),
            _escape(record.note),
        ]
    )


def parse(line: str) -> Transaction:
    line = line.rstrip("\r\n")
    fields = _split_fields(line)
    if len(fields) != 5:
        raise MalformedRecordError(line, f"expected 5 fields, got {len(fields)}")

    timestamp_raw, amount_raw, change_raw, location, note = fields
    try:
        timestamp = datetime.strptime(timestamp_raw, TIMESTAMP_FORMAT)
        amount = int(amount_raw)
        change = int(change_raw)
    except ValueError as exc:
        raise MalformedRecordError(line, str(exc)) from exc

    return Transaction(timestamp=timestamp, amount=amount, change=change, location=location, note=note)


__all__ = [
    "INVENTORY",
    "ContainerCategory",
    "LogContainer",
    "MalformedRecordError",
    "Transaction",
    "format_timestamp",
    "parse",
    "serialize",
]
