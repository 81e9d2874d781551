"""Flat-file persistence for currency transaction logs."""

__all__ = [
    "log_store",
    "paths",
]
