#!/usr/bin/env python3
"""
Assign or inspect tenant custom claims on Firebase Auth users.

USAGE:
    export GOOGLE_APPLICATION_CREDENTIALS=/path/to/service-account.json
    export FIREBASE_PROJECT_ID=my-planner-project

    python3 scripts/set_custom_claims.py set <email> <tenantId> [canEdit]
    python3 scripts/set_custom_claims.py get <email>
    python3 scripts/set_custom_claims.py list

`canEdit` defaults to true; pass `false` to grant read-only access.
The user must refresh their token (or sign out and in) before new claims apply.

Exit status: 0 on success, 1 on usage error, unknown user or provider error.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Optional, Sequence

from teamplanner.common.config import FALSY, PlannerSettings
from teamplanner.common.logging import bind_request_id, init_structured_logging
from teamplanner.common.validation import ValidationError
from teamplanner.persistence.firebase_client import require_firestore_emulator_or_allow_prod
from teamplanner.planning.repository import RepositoryError
from teamplanner.tenancy.provisioning import (
    IdentityNotFoundError,
    assign_tenant_claims,
    get_user_claims,
    list_user_claims,
)


def _parse_can_edit(value: Optional[str]) -> bool:
    if value is None:
        return True
    return value.strip().lower() not in FALSY


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage tenantId/canEdit custom claims on Firebase Auth users.")
    sub = parser.add_subparsers(dest="command")

    p_set = sub.add_parser("set", help="Assign a tenant (creating it if missing) and edit capability.")
    p_set.add_argument("email")
    p_set.add_argument("tenant_id")
    p_set.add_argument("can_edit", nargs="?", default=None, help="true|false (default: true)")

    p_get = sub.add_parser("get", help="Show a user's custom claims.")
    p_get.add_argument("email")

    sub.add_parser("list", help="List users (first 100) with their claims.")
    return parser


async def _cmd_set(args: argparse.Namespace) -> int:
    result = await assign_tenant_claims(args.email, args.tenant_id, _parse_can_edit(args.can_edit))
    print(f"User found: {result.email} (uid={result.uid})")
    if result.tenant_created:
        print(f"Tenant {result.tenant_id} created")
    else:
        print(f"Tenant {result.tenant_id} already exists")
    print("")
    print("Custom claims assigned:")
    print(f"  Email:    {result.email}")
    print(f"  UID:      {result.uid}")
    print(f"  TenantID: {result.tenant_id}")
    print(f"  CanEdit:  {str(result.can_edit).lower()}")
    print("")
    print("The user must refresh their token (or sign out and back in) for the change to take effect.")
    return 0


async def _cmd_get(args: argparse.Namespace) -> int:
    user = await get_user_claims(args.email)
    print(f"User: {user.email}")
    print(f"UID:  {user.uid}")
    if user.custom_claims:
        print("Custom claims:")
        print(json.dumps(dict(user.custom_claims), indent=2, sort_keys=True, default=str))
    else:
        print("No custom claims assigned")
    return 0


async def _cmd_list(args: argparse.Namespace) -> int:  # noqa: ARG001
    users = await list_user_claims()
    if not users:
        print("No users found.")
        return 0
    print(f"Total users: {len(users)}")
    for u in users:
        print("")
        print(f"Email: {u.email or 'N/A'}")
        print(f"  UID: {u.uid}")
        print(f"  Display name: {u.display_name or 'N/A'}")
        if u.custom_claims:
            print(f"  tenantId: {u.tenant_id or 'N/A'}")
            print(f"  canEdit:  {str(u.can_edit).lower()}")
        else:
            print("  Custom claims: none")
    return 0


_COMMANDS = {"set": _cmd_set, "get": _cmd_get, "list": _cmd_list}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        # argparse exits 2 on usage errors; this tool reports every failure as 1.
        return 0 if e.code in (0, None) else 1

    if not args.command:
        parser.print_help()
        return 0

    settings = PlannerSettings.from_env()
    init_structured_logging(service="set-custom-claims", env=settings.env, level=settings.log_level)
    try:
        require_firestore_emulator_or_allow_prod(caller="scripts.set_custom_claims")
    except SystemExit as e:
        print(e, file=sys.stderr)
        return 1

    try:
        with bind_request_id():
            return asyncio.run(_COMMANDS[args.command](args))
    except IdentityNotFoundError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        print("No such user in Firebase Authentication; check the email address.", file=sys.stderr)
        return 1
    except ValidationError as e:
        print(f"ERROR: invalid argument: {e}", file=sys.stderr)
        return 1
    except RepositoryError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"ERROR: provider error: {type(e).__name__}: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
