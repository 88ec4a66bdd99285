from __future__ import annotations

from typing import Any

from .errors import ValidationError


def require_int(value: Any, field: str, *, minimum: int | None = None) -> int:
    """
    Strict integer coercion for quantities and cent amounts.

    Accepts ints (not bools) and plain digit strings with an optional
    leading minus. Floats and scientific notation are rejected so that
    money never passes through binary floating point.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")

    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        body = stripped[1:] if stripped.startswith("-") else stripped
        if not body.isdigit():
            raise ValidationError(f"{field} must be an integer")
        result = int(stripped)
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", details={field: result})
    return result


def require_text(value: Any, field: str, *, max_length: int = 255) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} cannot be empty")
    text = value.strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text
