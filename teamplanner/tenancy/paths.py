from __future__ import annotations

from typing import Any

from teamplanner.common.validation import require_segment

COLLECTION_TENANTS = "tenants"

COLLECTION_EMPLOYEES = "employees"
COLLECTION_TEAMS = "teams"
COLLECTION_RECORDS = "records"
COLLECTION_VIEWS = "views"

TENANT_SCOPED_COLLECTIONS = frozenset({COLLECTION_EMPLOYEES, COLLECTION_TEAMS, COLLECTION_RECORDS, COLLECTION_VIEWS})


def tenant_ref(db: Any, tenant_id: str):
    """
    Tenant root document.

    Example:
      tenant_ref(db, "t1") => /tenants/t1
    """
    return db.collection(COLLECTION_TENANTS).document(require_segment(tenant_id, field="tenant_id"))


def tenant_collection(db: Any, tenant_id: str, collection_name: str):
    """
    Build a tenant-scoped collection reference.

    Example:
      tenant_collection(db, tenant_id="t1", collection_name="employees")
      => /tenants/t1/employees
    """
    if collection_name not in TENANT_SCOPED_COLLECTIONS:
        raise ValueError(f"unknown tenant-scoped collection: {collection_name!r}")
    return tenant_ref(db, tenant_id).collection(collection_name)


def tenant_doc(db: Any, tenant_id: str, collection_name: str, doc_id: str):
    """
    Build a tenant-scoped document reference.

    Example:
      tenant_doc(db, "t1", "teams", "abc") => /tenants/t1/teams/abc
    """
    return tenant_collection(db, tenant_id, collection_name).document(require_segment(doc_id, field="doc_id"))
