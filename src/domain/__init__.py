"""Domain models and collaborator interfaces for the currency log engine.

The models here are plain in-memory (Pydantic) types. They know how to turn
themselves into a log line and back, but nothing about where log files live,
so storage and the operations built on top of it can be tested separately.
"""

__all__ = [
    "character",
    "currency",
    "providers",
    "transaction",
]
