"""Sentinel for optional fields that were not supplied in a partial update."""

from typing import Any


class MissingType:
    """
    Type of the MISSING sentinel.

    Partial updates (break rules, date exceptions) need to tell "leave this
    field alone" apart from "set this field to NULL": an argument defaulting
    to MISSING is left unchanged, an explicit None clears the column.
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(MissingType, cls).__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo: Any):
        return self


MISSING: Any = MissingType()
