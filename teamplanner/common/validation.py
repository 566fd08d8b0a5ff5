from __future__ import annotations

import re
from typing import Any, Optional

_HEX_COLOR_RE = re.compile(r"^#?([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class ValidationError(ValueError):
    """Input rejected before any store I/O."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason


def require_text(value: Any, *, field: str, max_len: Optional[int] = None) -> str:
    s = str(value if value is not None else "").strip()
    if not s:
        raise ValidationError(field, "is required")
    if max_len is not None and len(s) > max_len:
        raise ValidationError(field, f"must be at most {max_len} characters")
    return s


def optional_text(value: Any, *, field: str, max_len: Optional[int] = None) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    if max_len is not None and len(s) > max_len:
        raise ValidationError(field, f"must be at most {max_len} characters")
    return s


def require_segment(value: Any, *, field: str) -> str:
    """A value usable as a single Firestore path segment (document id)."""
    s = require_text(value, field=field)
    if "/" in s:
        raise ValidationError(field, "must not contain '/'")
    if s in {".", ".."} or (s.startswith("__") and s.endswith("__")):
        raise ValidationError(field, "is not a valid document id")
    return s


def normalize_color(value: Any, *, field: str = "color") -> str:
    """
    Hex color normalized to '#RRGGBB' uppercase.

    Three-digit shorthand ('#1a3') expands to six digits ('#11AA33').
    """
    s = str(value or "").strip()
    m = _HEX_COLOR_RE.match(s)
    if not m:
        raise ValidationError(field, "invalid color format (use hex color like #FF5733)")
    digits = m.group(1)
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return "#" + digits.upper()


def optional_email(value: Any, *, field: str = "email") -> Optional[str]:
    s = optional_text(value, field=field)
    if s is None:
        return None
    if not _EMAIL_RE.match(s):
        raise ValidationError(field, "invalid email format")
    return s


def require_bool(value: Any, *, field: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(field, "must be a boolean")
    return value
