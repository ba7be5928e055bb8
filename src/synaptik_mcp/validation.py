"""Input validation helpers shared by the MCP tools and the dependency linker."""

import uuid
from datetime import datetime
from typing import Optional, List, Type, TypeVar
from enum import Enum

E = TypeVar("E", bound=Enum)


def is_valid_uuid(value: Optional[str]) -> bool:
    """True if value (after trimming) parses as a UUID."""
    if value is None or not str(value).strip():
        return False
    try:
        uuid.UUID(str(value).strip())
        return True
    except ValueError:
        return False


def clean_optional(value: Optional[str]) -> Optional[str]:
    """Trim a string argument, mapping blank to None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def split_csv(raw: Optional[str]) -> List[str]:
    """Split a comma separated argument, trimming entries and dropping empty ones."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def parse_enum(enum_cls: Type[E], value: Optional[str]) -> Optional[E]:
    """
    Case-insensitive enum lookup by value.

    Raises:
        ValueError: If value is set but names no member
    """
    value = clean_optional(value)
    if value is None:
        return None
    try:
        return enum_cls(value.upper())
    except ValueError:
        valid = ", ".join(member.value for member in enum_cls)
        raise ValueError(f"Invalid value '{value}'. Use: {valid}") from None


def is_iso_local_datetime(value: str) -> bool:
    """True for ISO-8601 local date-times (no offset) such as 2024-12-31T23:59:59."""
    if "T" not in value:
        return False
    try:
        return datetime.fromisoformat(value).tzinfo is None
    except ValueError:
        return False
