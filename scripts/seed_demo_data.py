#!/usr/bin/env python3
"""
Seed (or purge) a demo tenant for manual testing of the admin tool.

USAGE:
    export FIRESTORE_EMULATOR_HOST=127.0.0.1:8080   # or ALLOW_PROD_FIRESTORE=1
    export FIREBASE_PROJECT_ID=my-planner-project
    python3 scripts/seed_demo_data.py
    python3 scripts/seed_demo_data.py --tenant-id acme --purge

CREATED DATA:
    - Tenant: demo-company ("Demo Company")
    - Teams: TEC-BCN, ADM, SALES-MAD, MKT, OPS
    - Employees: 15, spread across the teams

--purge deletes every employee and then every team of the tenant instead.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from teamplanner.common.config import PlannerSettings
from teamplanner.common.logging import bind_request_id, init_structured_logging
from teamplanner.persistence.firebase_client import get_firestore_client, require_firestore_emulator_or_allow_prod
from teamplanner.planning.demo_data import DEMO_TENANT_ID, purge_tenant_data, seed_demo_tenant
from teamplanner.planning.repository import Repositories, RepositoryError


async def run(repos: Repositories, *, tenant_id: str, purge: bool) -> int:
    if purge:
        print(f"[PURGE] Deleting employees and teams of tenant {tenant_id}")
        p = await purge_tenant_data(repos, tenant_id)
        print(f"[PURGE] Deleted {p.employees_deleted} employees and {p.teams_deleted} teams")
        return 0

    print(f"[SEED] Seeding tenant {tenant_id}")
    s = await seed_demo_tenant(repos, tenant_id)
    print(f"[SEED] Tenant {s.tenant_id} {'created' if s.tenant_created else 'already exists'}")
    print(f"[SEED] Teams: {s.teams}")
    print(f"[SEED] Employees: {s.employees}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Seed or purge demo planning data.")
    parser.add_argument("--tenant-id", default=DEMO_TENANT_ID, help=f"Tenant id (default: {DEMO_TENANT_ID})")
    parser.add_argument("--purge", action="store_true", help="Delete all employees, then all teams, of the tenant.")
    args = parser.parse_args(argv)

    settings = PlannerSettings.from_env()
    init_structured_logging(service="seed-demo-data", env=settings.env, level=settings.log_level)
    require_firestore_emulator_or_allow_prod(caller="scripts.seed_demo_data")

    repos = Repositories.from_client(get_firestore_client(), tz=settings.timezone)
    try:
        with bind_request_id():
            return asyncio.run(run(repos, tenant_id=args.tenant_id, purge=args.purge))
    except RepositoryError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
