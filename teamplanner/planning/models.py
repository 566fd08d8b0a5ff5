"""
Planning entities, their create inputs, and their patch structs.

Firestore paths (all tenant-scoped except Tenant):
  tenants/{tid}
  tenants/{tid}/employees/{employee_id}
  tenants/{tid}/teams/{team_id}
  tenants/{tid}/records/{record_id}
  tenants/{tid}/views/{view_id}

Documents use the camelCase field names shared with the web client and the
security rules. Timestamp fields are plain UTC datetimes here; conversion
to/from the store-native type happens in the repository, driven by each
model's TIMESTAMP_FIELDS.

Validation runs on create inputs and patches only. Entities read back from
the store are built as-is.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from typing import Any, ClassVar, Literal, Mapping, Optional, Union

from teamplanner.common.validation import (
    ValidationError,
    normalize_color,
    optional_email,
    optional_text,
    require_bool,
    require_segment,
    require_text,
)

EMPLOYEE_DISPLAY_NAME_MAX = 10
TEAM_DISPLAY_NAME_MAX = 15

FontWeight = Literal["normal", "bold"]
FontStyle = Literal["normal", "italic"]
DateLike = Union[date, datetime]


class _Unset:
    """Marker for patch fields the caller did not supply."""

    _instance: ClassVar[Optional["_Unset"]] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def _is_set(v: Any) -> bool:
    return v is not UNSET


def _opt_segment(value: Any, *, field: str) -> Optional[str]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return require_segment(value, field=field)


def _segments(values: Any, *, field: str) -> tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, str):
        raise ValidationError(field, "must be a collection of ids, not a string")
    out: list[str] = []
    for v in values:
        s = require_segment(v, field=field)
        if s not in out:
            out.append(s)
    return tuple(out)


def _patch_doc(patch: Any, mapping: Mapping[str, str]) -> dict[str, Any]:
    doc: dict[str, Any] = {}
    for attr, key in mapping.items():
        v = getattr(patch, attr)
        if _is_set(v):
            doc[key] = v.to_firestore() if hasattr(v, "to_firestore") else (list(v) if isinstance(v, tuple) else v)
    return doc


# ---------------------------------------------------------------------------
# Tenant
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Tenant:
    """
    Root of isolation.

    Firestore path:
      tenants/{tenant_id}
    """

    TIMESTAMP_FIELDS: ClassVar[tuple[str, ...]] = ("createdAt", "updatedAt")

    id: str
    name: str
    owner_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @staticmethod
    def from_firestore(doc_id: str, data: Mapping[str, Any]) -> "Tenant":
        d = dict(data or {})
        return Tenant(
            id=doc_id,
            name=str(d.get("name") or ""),
            owner_id=d.get("ownerId"),
            created_at=d.get("createdAt"),
            updated_at=d.get("updatedAt"),
        )


# ---------------------------------------------------------------------------
# Employee
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Employee:
    TIMESTAMP_FIELDS: ClassVar[tuple[str, ...]] = ("createdAt", "updatedAt")

    id: str
    full_name: str
    display_name: str
    team_id: str
    can_edit: bool = False
    email: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @staticmethod
    def from_firestore(doc_id: str, data: Mapping[str, Any]) -> "Employee":
        d = dict(data or {})
        return Employee(
            id=doc_id,
            full_name=str(d.get("fullName") or ""),
            display_name=str(d.get("displayName") or ""),
            team_id=str(d.get("teamId") or ""),
            can_edit=d.get("canEdit") is True,
            email=d.get("email") or None,
            user_id=d.get("userId") or None,
            created_at=d.get("createdAt"),
            updated_at=d.get("updatedAt"),
        )


_EMPLOYEE_FIELDS = {
    "full_name": "fullName",
    "display_name": "displayName",
    "team_id": "teamId",
    "can_edit": "canEdit",
    "email": "email",
    "user_id": "userId",
}


@dataclass(frozen=True, slots=True)
class EmployeeCreate:
    full_name: str
    display_name: str
    team_id: str
    can_edit: bool = False
    email: Optional[str] = None
    user_id: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "full_name", require_text(self.full_name, field="full_name"))
        object.__setattr__(
            self,
            "display_name",
            require_text(self.display_name, field="display_name", max_len=EMPLOYEE_DISPLAY_NAME_MAX),
        )
        object.__setattr__(self, "team_id", require_segment(self.team_id, field="team_id"))
        object.__setattr__(self, "can_edit", require_bool(self.can_edit, field="can_edit"))
        object.__setattr__(self, "email", optional_email(self.email))
        object.__setattr__(self, "user_id", _opt_segment(self.user_id, field="user_id"))

    def to_firestore(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "fullName": self.full_name,
            "displayName": self.display_name,
            "teamId": self.team_id,
            "canEdit": self.can_edit,
        }
        if self.email is not None:
            doc["email"] = self.email
        if self.user_id is not None:
            doc["userId"] = self.user_id
        return doc


@dataclass(frozen=True, slots=True)
class EmployeePatch:
    full_name: Any = UNSET
    display_name: Any = UNSET
    team_id: Any = UNSET
    can_edit: Any = UNSET
    email: Any = UNSET
    user_id: Any = UNSET

    def __post_init__(self) -> None:
        if _is_set(self.full_name):
            object.__setattr__(self, "full_name", require_text(self.full_name, field="full_name"))
        if _is_set(self.display_name):
            object.__setattr__(
                self,
                "display_name",
                require_text(self.display_name, field="display_name", max_len=EMPLOYEE_DISPLAY_NAME_MAX),
            )
        if _is_set(self.team_id):
            object.__setattr__(self, "team_id", require_segment(self.team_id, field="team_id"))
        if _is_set(self.can_edit):
            object.__setattr__(self, "can_edit", require_bool(self.can_edit, field="can_edit"))
        if _is_set(self.email):
            object.__setattr__(self, "email", optional_email(self.email))
        if _is_set(self.user_id):
            object.__setattr__(self, "user_id", _opt_segment(self.user_id, field="user_id"))

    def to_firestore(self) -> dict[str, Any]:
        return _patch_doc(self, _EMPLOYEE_FIELDS)


# ---------------------------------------------------------------------------
# Team
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Team:
    TIMESTAMP_FIELDS: ClassVar[tuple[str, ...]] = ("createdAt", "updatedAt")

    id: str
    full_name: str
    display_name: str
    color: str
    manager_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @staticmethod
    def from_firestore(doc_id: str, data: Mapping[str, Any]) -> "Team":
        d = dict(data or {})
        return Team(
            id=doc_id,
            full_name=str(d.get("fullName") or ""),
            display_name=str(d.get("displayName") or ""),
            color=str(d.get("color") or ""),
            manager_id=d.get("managerId") or None,
            created_at=d.get("createdAt"),
            updated_at=d.get("updatedAt"),
        )


_TEAM_FIELDS = {
    "full_name": "fullName",
    "display_name": "displayName",
    "color": "color",
    "manager_id": "managerId",
}


@dataclass(frozen=True, slots=True)
class TeamCreate:
    full_name: str
    display_name: str
    color: str
    manager_id: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "full_name", require_text(self.full_name, field="full_name"))
        object.__setattr__(
            self,
            "display_name",
            require_text(self.display_name, field="display_name", max_len=TEAM_DISPLAY_NAME_MAX),
        )
        object.__setattr__(self, "color", normalize_color(self.color))
        object.__setattr__(self, "manager_id", _opt_segment(self.manager_id, field="manager_id"))

    def to_firestore(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "fullName": self.full_name,
            "displayName": self.display_name,
            "color": self.color,
        }
        if self.manager_id is not None:
            doc["managerId"] = self.manager_id
        return doc


@dataclass(frozen=True, slots=True)
class TeamPatch:
    full_name: Any = UNSET
    display_name: Any = UNSET
    color: Any = UNSET
    manager_id: Any = UNSET

    def __post_init__(self) -> None:
        if _is_set(self.full_name):
            object.__setattr__(self, "full_name", require_text(self.full_name, field="full_name"))
        if _is_set(self.display_name):
            object.__setattr__(
                self,
                "display_name",
                require_text(self.display_name, field="display_name", max_len=TEAM_DISPLAY_NAME_MAX),
            )
        if _is_set(self.color):
            object.__setattr__(self, "color", normalize_color(self.color))
        if _is_set(self.manager_id):
            object.__setattr__(self, "manager_id", _opt_segment(self.manager_id, field="manager_id"))

    def to_firestore(self) -> dict[str, Any]:
        return _patch_doc(self, _TEAM_FIELDS)


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RecordStyle:
    background_color: Optional[str] = None
    text_color: Optional[str] = None
    font_weight: Optional[FontWeight] = None
    font_style: Optional[FontStyle] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "background_color", optional_text(self.background_color, field="style.background_color"))
        object.__setattr__(self, "text_color", optional_text(self.text_color, field="style.text_color"))
        if self.font_weight is not None and self.font_weight not in ("normal", "bold"):
            raise ValidationError("style.font_weight", "must be one of: normal|bold")
        if self.font_style is not None and self.font_style not in ("normal", "italic"):
            raise ValidationError("style.font_style", "must be one of: normal|italic")

    def to_firestore(self) -> dict[str, Any]:
        doc: dict[str, Any] = {}
        if self.background_color is not None:
            doc["backgroundColor"] = self.background_color
        if self.text_color is not None:
            doc["textColor"] = self.text_color
        if self.font_weight is not None:
            doc["fontWeight"] = self.font_weight
        if self.font_style is not None:
            doc["fontStyle"] = self.font_style
        return doc

    @staticmethod
    def from_firestore(data: Optional[Mapping[str, Any]]) -> Optional["RecordStyle"]:
        if not data:
            return None
        d = dict(data)
        weight = d.get("fontWeight")
        slant = d.get("fontStyle")
        return RecordStyle(
            background_color=d.get("backgroundColor"),
            text_color=d.get("textColor"),
            font_weight=weight if weight in ("normal", "bold") else None,
            font_style=slant if slant in ("normal", "italic") else None,
        )


@dataclass(frozen=True, slots=True)
class Record:
    """
    One planning-grid cell: (employee, day) -> free text.

    Uniqueness of (employee_id, date) is not enforced by the store.
    """

    TIMESTAMP_FIELDS: ClassVar[tuple[str, ...]] = ("date", "createdAt", "updatedAt")

    id: str
    employee_id: str
    date: datetime
    value: str
    updated_by: str
    style: Optional[RecordStyle] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @staticmethod
    def from_firestore(doc_id: str, data: Mapping[str, Any]) -> "Record":
        d = dict(data or {})
        return Record(
            id=doc_id,
            employee_id=str(d.get("employeeId") or ""),
            date=d.get("date"),
            value=str(d.get("value") or ""),
            updated_by=str(d.get("updatedBy") or ""),
            style=RecordStyle.from_firestore(d.get("style")),
            created_at=d.get("createdAt"),
            updated_at=d.get("updatedAt"),
        )


@dataclass(frozen=True, slots=True)
class RecordCreate:
    employee_id: str
    date: DateLike
    value: str
    updated_by: str
    style: Optional[RecordStyle] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "employee_id", require_segment(self.employee_id, field="employee_id"))
        if not isinstance(self.date, (date, datetime)):
            raise ValidationError("date", "must be a date or datetime")
        object.__setattr__(self, "value", str(self.value if self.value is not None else ""))
        object.__setattr__(self, "updated_by", require_segment(self.updated_by, field="updated_by"))

    def to_firestore(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "employeeId": self.employee_id,
            "date": self.date,
            "value": self.value,
            "updatedBy": self.updated_by,
        }
        if self.style is not None:
            doc["style"] = self.style.to_firestore()
        return doc


_RECORD_FIELDS = {
    "value": "value",
    "style": "style",
    "updated_by": "updatedBy",
}


@dataclass(frozen=True, slots=True)
class RecordPatch:
    """
    Record update. `updated_by` is mandatory on every update.

    employee_id and date identify the grid cell and are not patchable; moving
    a cell is a delete plus a create.
    """

    updated_by: str
    value: Any = UNSET
    style: Any = UNSET

    def __post_init__(self) -> None:
        object.__setattr__(self, "updated_by", require_segment(self.updated_by, field="updated_by"))
        if _is_set(self.value):
            object.__setattr__(self, "value", str(self.value if self.value is not None else ""))
        if _is_set(self.style) and self.style is not None and not isinstance(self.style, RecordStyle):
            raise ValidationError("style", "must be a RecordStyle or None")

    def to_firestore(self) -> dict[str, Any]:
        return _patch_doc(self, _RECORD_FIELDS)


# ---------------------------------------------------------------------------
# View
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DateRange:
    start: DateLike
    end: DateLike

    def __post_init__(self) -> None:
        if not isinstance(self.start, (date, datetime)) or not isinstance(self.end, (date, datetime)):
            raise ValidationError("date_range", "start and end must be dates")
        if _as_comparable(self.end) < _as_comparable(self.start):
            raise ValidationError("date_range", "end must be >= start")

    @staticmethod
    def from_store(start: DateLike, end: DateLike) -> "DateRange":
        """Rebuild a stored range without re-validating it."""
        dr = object.__new__(DateRange)
        object.__setattr__(dr, "start", start)
        object.__setattr__(dr, "end", end)
        return dr


def _as_comparable(v: DateLike) -> date:
    return v.date() if isinstance(v, datetime) else v


@dataclass(frozen=True, slots=True)
class ViewFilters:
    date_range: Optional[DateRange] = None
    team_ids: tuple[str, ...] = ()
    employee_ids: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "team_ids", _segments(self.team_ids, field="filters.team_ids"))
        object.__setattr__(self, "employee_ids", _segments(self.employee_ids, field="filters.employee_ids"))

    def to_firestore(self) -> dict[str, Any]:
        doc: dict[str, Any] = {}
        if self.date_range is not None:
            doc["dateRange"] = {"start": self.date_range.start, "end": self.date_range.end}
        if self.team_ids:
            doc["teamIds"] = list(self.team_ids)
        if self.employee_ids:
            doc["employeeIds"] = list(self.employee_ids)
        return doc

    @staticmethod
    def from_firestore(data: Optional[Mapping[str, Any]]) -> "ViewFilters":
        d = dict(data or {})
        dr = d.get("dateRange") or None
        date_range = None
        if dr and dr.get("start") is not None and dr.get("end") is not None:
            date_range = DateRange.from_store(dr["start"], dr["end"])
        return ViewFilters(
            date_range=date_range,
            team_ids=tuple(str(t) for t in (d.get("teamIds") or ())),
            employee_ids=tuple(str(e) for e in (d.get("employeeIds") or ())),
        )


@dataclass(frozen=True, slots=True)
class View:
    """Saved grid view, visible to its owner and to everyone in shared_with."""

    TIMESTAMP_FIELDS: ClassVar[tuple[str, ...]] = (
        "createdAt",
        "updatedAt",
        "filters.dateRange.start",
        "filters.dateRange.end",
    )

    id: str
    owner_id: str
    name: str
    filters: ViewFilters = field(default_factory=ViewFilters)
    shared_with: tuple[str, ...] = ()
    color: Optional[str] = None
    is_default: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_visible_to(self, employee_id: str) -> bool:
        return employee_id == self.owner_id or employee_id in self.shared_with

    @staticmethod
    def from_firestore(doc_id: str, data: Mapping[str, Any]) -> "View":
        d = dict(data or {})
        return View(
            id=doc_id,
            owner_id=str(d.get("ownerId") or ""),
            name=str(d.get("name") or ""),
            filters=ViewFilters.from_firestore(d.get("filters")),
            shared_with=tuple(str(s) for s in (d.get("sharedWith") or ())),
            color=d.get("color") or None,
            is_default=d.get("isDefault") is True,
            created_at=d.get("createdAt"),
            updated_at=d.get("updatedAt"),
        )


_VIEW_FIELDS = {
    "name": "name",
    "filters": "filters",
    "shared_with": "sharedWith",
    "color": "color",
    "is_default": "isDefault",
}


@dataclass(frozen=True, slots=True)
class ViewCreate:
    owner_id: str
    name: str
    filters: ViewFilters = field(default_factory=ViewFilters)
    shared_with: tuple[str, ...] = ()
    color: Optional[str] = None
    is_default: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "owner_id", require_segment(self.owner_id, field="owner_id"))
        object.__setattr__(self, "name", require_text(self.name, field="name"))
        if not isinstance(self.filters, ViewFilters):
            raise ValidationError("filters", "must be ViewFilters")
        object.__setattr__(self, "shared_with", _segments(self.shared_with, field="shared_with"))
        if self.color is not None:
            object.__setattr__(self, "color", normalize_color(self.color))
        object.__setattr__(self, "is_default", require_bool(self.is_default, field="is_default"))

    def to_firestore(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "ownerId": self.owner_id,
            "name": self.name,
            "filters": self.filters.to_firestore(),
            "sharedWith": list(self.shared_with),
            "isDefault": self.is_default,
        }
        if self.color is not None:
            doc["color"] = self.color
        return doc


@dataclass(frozen=True, slots=True)
class ViewPatch:
    """View update; ownership is fixed at creation."""

    name: Any = UNSET
    filters: Any = UNSET
    shared_with: Any = UNSET
    color: Any = UNSET
    is_default: Any = UNSET

    def __post_init__(self) -> None:
        if _is_set(self.name):
            object.__setattr__(self, "name", require_text(self.name, field="name"))
        if _is_set(self.filters) and not isinstance(self.filters, ViewFilters):
            raise ValidationError("filters", "must be ViewFilters")
        if _is_set(self.shared_with):
            object.__setattr__(self, "shared_with", _segments(self.shared_with, field="shared_with"))
        if _is_set(self.color) and self.color is not None:
            object.__setattr__(self, "color", normalize_color(self.color))
        if _is_set(self.is_default):
            object.__setattr__(self, "is_default", require_bool(self.is_default, field="is_default"))

    def to_firestore(self) -> dict[str, Any]:
        return _patch_doc(self, _VIEW_FIELDS)


def patch_field_names(patch: Any) -> list[str]:
    """Attribute names a patch actually sets (for logging)."""
    return [f.name for f in fields(patch) if _is_set(getattr(patch, f.name))]
