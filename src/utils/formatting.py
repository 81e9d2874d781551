from __future__ import annotations

import re

_ILLEGAL_FILE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def sanitize_file_name(name: str, *, replacement: str = "_") -> str:
    cleaned = _ILLEGAL_FILE_CHARS.sub(replacement, name)
    # Windows refuses names ending in a dot or a space.
    cleaned = cleaned.rstrip(". ")
    return cleaned or replacement


def escape_markdown_cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\r", " ").replace("\n", " ")


def format_change(value: int) -> str:
    return f"+{value}" if value > 0 else str(value)
