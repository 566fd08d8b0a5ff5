"""
Tenant-scoped repositories.

Every read and write is qualified by a tenant id and lands under
`tenants/{tenant_id}/{employees|teams|records|views}/{doc_id}`. Path
construction and timestamp conversion live in `_FirestoreRepository` only;
the four entity repositories differ in their models and extra queries.

Calls are async: the synchronous Firestore client runs in a worker thread
(`asyncio.to_thread`). The client is process-wide and shared without locks;
concurrent writes to one document resolve last-write-wins in the store.

Failures from the store are re-raised as RepositoryError tagged with the
entity kind and operation. Nothing here retries; retry policy belongs to the
store client.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Any, Callable, ClassVar, Generic, Mapping, Optional, TypeVar

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from teamplanner.common.logging import log_event
from teamplanner.common.timeutils import (
    UTC,
    end_of_day,
    from_store_timestamp,
    monotonic_utc_now,
    start_of_day,
    to_store_timestamp,
    to_utc,
)
from teamplanner.common.validation import ValidationError, require_segment, require_text
from teamplanner.persistence.firebase_client import get_firestore_client
from teamplanner.tenancy.paths import (
    COLLECTION_EMPLOYEES,
    COLLECTION_RECORDS,
    COLLECTION_TEAMS,
    COLLECTION_VIEWS,
    tenant_collection,
    tenant_doc,
    tenant_ref,
)

from .models import (
    Employee,
    EmployeeCreate,
    EmployeePatch,
    Record,
    RecordCreate,
    RecordPatch,
    Team,
    TeamCreate,
    TeamPatch,
    Tenant,
    View,
    ViewCreate,
    ViewPatch,
    patch_field_names,
)
from .subscriptions import CollectionSubscription

logger = logging.getLogger(__name__)

E = TypeVar("E")
C = TypeVar("C")
P = TypeVar("P")
T = TypeVar("T")

Clock = Callable[[], datetime]


class RepositoryError(RuntimeError):
    """A store I/O failure, tagged with what was being done when it happened."""

    def __init__(
        self,
        *,
        entity_kind: str,
        operation: str,
        tenant_id: Optional[str] = None,
        doc_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        detail = f"{type(cause).__name__}: {cause}" if cause is not None else "unknown error"
        super().__init__(f"{entity_kind}.{operation} failed: {detail}")
        self.entity_kind = entity_kind
        self.operation = operation
        self.tenant_id = tenant_id
        self.doc_id = doc_id
        self.cause = cause


def _get_path(doc: Mapping[str, Any], path: str) -> Any:
    cur: Any = doc
    for part in path.split("."):
        if not isinstance(cur, Mapping) or part not in cur:
            return None
        cur = cur[part]
    return cur


def _set_path(doc: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    cur: Any = doc
    for part in parts[:-1]:
        nxt = cur.get(part)
        if not isinstance(nxt, dict):
            return
        cur = nxt
    if parts[-1] in cur:
        cur[parts[-1]] = value


def _copy_nested(doc: Mapping[str, Any]) -> dict[str, Any]:
    return {k: (_copy_nested(v) if isinstance(v, Mapping) else v) for k, v in doc.items()}


class _FirestoreRepository(Generic[E]):
    """Shared plumbing: client access, timestamp codec, error tagging."""

    entity_kind: ClassVar[str]
    model: ClassVar[Any]

    def __init__(self, db: Any = None, *, clock: Clock = monotonic_utc_now, tz: tzinfo = UTC) -> None:
        self._db = db
        self._clock = clock
        self._tz = tz

    @property
    def db(self) -> Any:
        if self._db is None:
            self._db = get_firestore_client()
        return self._db

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def _now(self) -> datetime:
        return to_utc(self._clock())

    # -- timestamp codec (the only place store timestamps are converted) -----

    def _encode(self, doc: Mapping[str, Any]) -> dict[str, Any]:
        out = _copy_nested(doc)
        for path in self.model.TIMESTAMP_FIELDS:
            v = _get_path(out, path)
            if v is not None:
                _set_path(out, path, to_store_timestamp(v, tz=self._tz))
        return out

    def _decode(self, data: Optional[Mapping[str, Any]]) -> dict[str, Any]:
        out = _copy_nested(data or {})
        for path in self.model.TIMESTAMP_FIELDS:
            v = _get_path(out, path)
            if v is not None:
                _set_path(out, path, from_store_timestamp(v))
        return out

    def _to_entity(self, snap: Any) -> E:
        return self.model.from_firestore(snap.id, self._decode(snap.to_dict()))

    # -- I/O -----------------------------------------------------------------

    def _failure(
        self,
        operation: str,
        cause: BaseException,
        *,
        tenant_id: Optional[str] = None,
        doc_id: Optional[str] = None,
    ) -> RepositoryError:
        log_event(
            logger,
            "repository.failure",
            severity="ERROR",
            entity_kind=self.entity_kind,
            operation=operation,
            tenant_id=tenant_id,
            doc_id=doc_id,
            error=f"{type(cause).__name__}: {cause}",
        )
        return RepositoryError(
            entity_kind=self.entity_kind,
            operation=operation,
            tenant_id=tenant_id,
            doc_id=doc_id,
            cause=cause,
        )

    async def _call(
        self,
        operation: str,
        fn: Callable[[], T],
        *,
        tenant_id: Optional[str] = None,
        doc_id: Optional[str] = None,
    ) -> T:
        try:
            return await asyncio.to_thread(fn)
        except Exception as e:
            raise self._failure(operation, e, tenant_id=tenant_id, doc_id=doc_id) from e


class TenantScopedRepository(_FirestoreRepository[E], Generic[E, C, P]):
    """
    Generic CRUD over one tenant-scoped collection.

    tenant_id is always the first argument; there is no unscoped entry point.
    """

    collection_name: ClassVar[str]
    create_model: ClassVar[type]
    patch_model: ClassVar[type]
    default_order_by: ClassVar[Optional[str]] = None

    def _collection(self, tenant_id: str) -> Any:
        return tenant_collection(self.db, tenant_id, self.collection_name)

    def _doc(self, tenant_id: str, doc_id: str) -> Any:
        return tenant_doc(self.db, tenant_id, self.collection_name, doc_id)

    def _creation_stamps(self, now: datetime) -> dict[str, Any]:
        return {"createdAt": now}

    async def _query(self, operation: str, tenant_id: str, build: Callable[[Any], Any]) -> list[E]:
        query = build(self._collection(tenant_id))

        def _run() -> list[E]:
            return [self._to_entity(snap) for snap in query.stream()]

        return await self._call(operation, _run, tenant_id=tenant_id)

    async def list_all(self, tenant_id: str) -> list[E]:
        return await self._query("list_all", tenant_id, lambda col: col)

    async def get_by_id(self, tenant_id: str, doc_id: str) -> Optional[E]:
        ref = self._doc(tenant_id, doc_id)

        def _run() -> Optional[E]:
            snap = ref.get()
            if not snap.exists:
                return None
            return self._to_entity(snap)

        return await self._call("get_by_id", _run, tenant_id=tenant_id, doc_id=doc_id)

    async def create(self, tenant_id: str, data: C) -> str:
        """Add a document (store-generated id) and return its id."""
        if not isinstance(data, self.create_model):
            raise TypeError(f"{self.entity_kind}.create expects {self.create_model.__name__}")
        col = self._collection(tenant_id)
        doc = self._encode({**data.to_firestore(), **self._creation_stamps(self._now())})

        def _run() -> str:
            _, ref = col.add(doc)
            return ref.id

        doc_id = await self._call("create", _run, tenant_id=tenant_id)
        log_event(
            logger,
            "repository.created",
            severity="DEBUG",
            entity_kind=self.entity_kind,
            tenant_id=tenant_id,
            doc_id=doc_id,
        )
        return doc_id

    async def update(self, tenant_id: str, doc_id: str, patch: P) -> None:
        """
        Merge only the fields the patch sets; `updatedAt` is always stamped now,
        whatever the caller supplied. Fails if the document does not exist.
        """
        if not isinstance(patch, self.patch_model):
            raise TypeError(f"{self.entity_kind}.update expects {self.patch_model.__name__}")
        ref = self._doc(tenant_id, doc_id)
        doc = self._encode({**patch.to_firestore(), "updatedAt": self._now()})

        await self._call("update", lambda: ref.update(doc), tenant_id=tenant_id, doc_id=doc_id)
        log_event(
            logger,
            "repository.updated",
            severity="DEBUG",
            entity_kind=self.entity_kind,
            tenant_id=tenant_id,
            doc_id=doc_id,
            fields=patch_field_names(patch),
        )

    async def delete(self, tenant_id: str, doc_id: str) -> None:
        ref = self._doc(tenant_id, doc_id)
        await self._call("delete", lambda: ref.delete(), tenant_id=tenant_id, doc_id=doc_id)
        log_event(
            logger,
            "repository.deleted",
            severity="DEBUG",
            entity_kind=self.entity_kind,
            tenant_id=tenant_id,
            doc_id=doc_id,
        )

    def subscribe(self, tenant_id: str, *, order_by: Optional[str] = None) -> CollectionSubscription[E]:
        """Live full-collection snapshots (see `subscriptions`)."""
        query = self._collection(tenant_id)
        field = order_by or self.default_order_by
        if field:
            query = query.order_by(field, direction=firestore.Query.ASCENDING)
        return CollectionSubscription(
            query=query,
            to_entity=self._to_entity,
            entity_kind=self.entity_kind,
            tenant_id=tenant_id,
            on_error=lambda e: self._failure("subscribe", e, tenant_id=tenant_id),
        )


class EmployeeRepository(TenantScopedRepository[Employee, EmployeeCreate, EmployeePatch]):
    entity_kind = "employee"
    collection_name = COLLECTION_EMPLOYEES
    model = Employee
    create_model = EmployeeCreate
    patch_model = EmployeePatch
    default_order_by = "displayName"

    async def list_by_team(self, tenant_id: str, team_id: str) -> list[Employee]:
        team_id = require_segment(team_id, field="team_id")
        return await self._query(
            "list_by_team",
            tenant_id,
            lambda col: col.where(filter=FieldFilter("teamId", "==", team_id)),
        )


class TeamRepository(TenantScopedRepository[Team, TeamCreate, TeamPatch]):
    entity_kind = "team"
    collection_name = COLLECTION_TEAMS
    model = Team
    create_model = TeamCreate
    patch_model = TeamPatch
    default_order_by = "displayName"


class RecordRepository(TenantScopedRepository[Record, RecordCreate, RecordPatch]):
    """
    Planning-grid cells.

    Day boundaries use the repository timezone: a bare `date` means that
    whole calendar day in `tz`.
    """

    entity_kind = "record"
    collection_name = COLLECTION_RECORDS
    model = Record
    create_model = RecordCreate
    patch_model = RecordPatch

    def _creation_stamps(self, now: datetime) -> dict[str, Any]:
        return {"createdAt": now, "updatedAt": now}

    def _range_bounds(self, start: Any, end: Any) -> tuple[datetime, datetime]:
        lo = start_of_day(start, tz=self._tz) if _is_bare_date(start) else to_utc(start, tz=self._tz)
        hi = end_of_day(end, tz=self._tz) if _is_bare_date(end) else to_utc(end, tz=self._tz)
        if hi < lo:
            raise ValidationError("date_range", "end must be >= start")
        return lo, hi

    def _date_filters(self, query: Any, lo: datetime, hi: datetime) -> Any:
        return (
            query.where(filter=FieldFilter("date", ">=", to_store_timestamp(lo)))
            .where(filter=FieldFilter("date", "<=", to_store_timestamp(hi)))
        )

    async def list_by_employee_and_date_range(
        self, tenant_id: str, employee_id: str, start: Any, end: Any
    ) -> list[Record]:
        """Records of one employee with start <= date <= end, oldest first."""
        employee_id = require_segment(employee_id, field="employee_id")
        lo, hi = self._range_bounds(start, end)
        return await self._query(
            "list_by_employee_and_date_range",
            tenant_id,
            lambda col: self._date_filters(col.where(filter=FieldFilter("employeeId", "==", employee_id)), lo, hi)
            .order_by("date", direction=firestore.Query.ASCENDING),
        )

    async def list_by_date_range(self, tenant_id: str, start: Any, end: Any) -> list[Record]:
        """All records of the tenant with start <= date <= end, oldest first."""
        lo, hi = self._range_bounds(start, end)
        return await self._query(
            "list_by_date_range",
            tenant_id,
            lambda col: self._date_filters(col, lo, hi).order_by("date", direction=firestore.Query.ASCENDING),
        )

    async def get_by_employee_and_date(self, tenant_id: str, employee_id: str, day: Any) -> Optional[Record]:
        """
        The record of `employee_id` on the calendar day containing `day`
        (time of day ignored), or None. At most one is returned.
        """
        employee_id = require_segment(employee_id, field="employee_id")
        lo, hi = start_of_day(day, tz=self._tz), end_of_day(day, tz=self._tz)
        rows = await self._query(
            "get_by_employee_and_date",
            tenant_id,
            lambda col: self._date_filters(col.where(filter=FieldFilter("employeeId", "==", employee_id)), lo, hi)
            .limit(1),
        )
        return rows[0] if rows else None


def _is_bare_date(v: Any) -> bool:
    return isinstance(v, date) and not isinstance(v, datetime)


class ViewRepository(TenantScopedRepository[View, ViewCreate, ViewPatch]):
    entity_kind = "view"
    collection_name = COLLECTION_VIEWS
    model = View
    create_model = ViewCreate
    patch_model = ViewPatch

    async def list_by_owner(self, tenant_id: str, owner_id: str) -> list[View]:
        owner_id = require_segment(owner_id, field="owner_id")
        return await self._query(
            "list_by_owner",
            tenant_id,
            lambda col: col.where(filter=FieldFilter("ownerId", "==", owner_id)),
        )

    async def list_shared_with(self, tenant_id: str, employee_id: str) -> list[View]:
        employee_id = require_segment(employee_id, field="employee_id")
        return await self._query(
            "list_shared_with",
            tenant_id,
            lambda col: col.where(filter=FieldFilter("sharedWith", "array_contains", employee_id)),
        )


class TenantRepository(_FirestoreRepository[Tenant]):
    """
    Tenant root documents (`tenants/{tenant_id}`).

    Normally written by provisioning; exposed here for existence checks and
    demo setup.
    """

    entity_kind = "tenant"
    model = Tenant

    async def get(self, tenant_id: str) -> Optional[Tenant]:
        ref = tenant_ref(self.db, tenant_id)

        def _run() -> Optional[Tenant]:
            snap = ref.get()
            return self._to_entity(snap) if snap.exists else None

        return await self._call("get", _run, tenant_id=tenant_id, doc_id=tenant_id)

    async def exists(self, tenant_id: str) -> bool:
        return (await self.get(tenant_id)) is not None

    async def create(self, tenant_id: str, *, name: str, owner_id: Optional[str] = None) -> Tenant:
        ref = tenant_ref(self.db, tenant_id)
        now = self._now()
        doc: dict[str, Any] = {"name": require_text(name, field="name"), "createdAt": now}
        if owner_id:
            doc["ownerId"] = require_segment(owner_id, field="owner_id")
        encoded = self._encode(doc)

        await self._call("create", lambda: ref.set(encoded), tenant_id=tenant_id, doc_id=tenant_id)
        return Tenant.from_firestore(ref.id, self._decode(encoded))

    async def ensure(self, tenant_id: str, *, default_name: str, owner_id: Optional[str] = None) -> tuple[Tenant, bool]:
        """Return (tenant, created); an existing tenant is returned untouched."""
        existing = await self.get(tenant_id)
        if existing is not None:
            return existing, False
        return await self.create(tenant_id, name=default_name, owner_id=owner_id), True


@dataclass(frozen=True)
class Repositories:
    """All repositories over one shared store client."""

    tenants: TenantRepository
    employees: EmployeeRepository
    teams: TeamRepository
    records: RecordRepository
    views: ViewRepository

    @classmethod
    def from_client(cls, db: Any = None, *, clock: Clock = monotonic_utc_now, tz: tzinfo = UTC) -> "Repositories":
        client = db if db is not None else get_firestore_client()
        return cls(
            tenants=TenantRepository(client, clock=clock, tz=tz),
            employees=EmployeeRepository(client, clock=clock, tz=tz),
            teams=TeamRepository(client, clock=clock, tz=tz),
            records=RecordRepository(client, clock=clock, tz=tz),
            views=ViewRepository(client, clock=clock, tz=tz),
        )
