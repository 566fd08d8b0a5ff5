"""
Demo tenant seeding and tenant data purge.

Both go through the repositories, so they get the same validation,
timestamps and error tagging as any other caller. Neither is transactional:
a failure midway leaves whatever was written so far.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from teamplanner.common.logging import log_event

from .models import EmployeeCreate, TeamCreate
from .repository import Repositories

logger = logging.getLogger(__name__)

DEMO_TENANT_ID = "demo-company"
DEMO_TENANT_NAME = "Demo Company"

# (full name, display name, color)
DEMO_TEAMS: tuple[tuple[str, str, str], ...] = (
    ("Technical Team Barcelona", "TEC-BCN", "#FF5733"),
    ("Administration Team", "ADM", "#33C4FF"),
    ("Sales Team Madrid", "SALES-MAD", "#28A745"),
    ("Marketing Team", "MKT", "#FFC107"),
    ("Operations Team", "OPS", "#6F42C1"),
)

# (team index, full name, display name, can edit, email)
DEMO_EMPLOYEES: tuple[tuple[int, str, str, bool, str], ...] = (
    (0, "Carlos García", "CG", True, "carlos.garcia@demo.com"),
    (0, "Ana Martínez", "AM", True, "ana.martinez@demo.com"),
    (0, "David López", "DL", False, "david.lopez@demo.com"),
    (0, "Laura Sánchez", "LS", False, "laura.sanchez@demo.com"),
    (1, "María González", "MG", True, "maria.gonzalez@demo.com"),
    (1, "Juan Rodríguez", "JR", False, "juan.rodriguez@demo.com"),
    (1, "Elena Fernández", "EF", False, "elena.fernandez@demo.com"),
    (2, "Pedro Jiménez", "PJ", True, "pedro.jimenez@demo.com"),
    (2, "Carmen Ruiz", "CR", False, "carmen.ruiz@demo.com"),
    (2, "Alberto Moreno", "AMO", False, "alberto.moreno@demo.com"),
    (3, "Sofía Torres", "ST", True, "sofia.torres@demo.com"),
    (3, "Miguel Ramírez", "MR", False, "miguel.ramirez@demo.com"),
    (4, "Isabel Castro", "IC", True, "isabel.castro@demo.com"),
    (4, "Francisco Ortiz", "FO", False, "francisco.ortiz@demo.com"),
    (4, "Patricia Gómez", "PG", False, "patricia.gomez@demo.com"),
)


@dataclass(frozen=True, slots=True)
class SeedSummary:
    tenant_id: str
    tenant_created: bool
    teams: int
    employees: int


@dataclass(frozen=True, slots=True)
class PurgeSummary:
    tenant_id: str
    employees_deleted: int
    teams_deleted: int


async def seed_demo_tenant(repos: Repositories, tenant_id: str = DEMO_TENANT_ID) -> SeedSummary:
    """Create the demo tenant (if missing), five teams and fifteen employees."""
    _, created = await repos.tenants.ensure(tenant_id, default_name=DEMO_TENANT_NAME)

    team_ids: list[str] = []
    for full_name, display_name, color in DEMO_TEAMS:
        team_ids.append(
            await repos.teams.create(
                tenant_id,
                TeamCreate(full_name=full_name, display_name=display_name, color=color),
            )
        )

    employees = 0
    for team_idx, full_name, display_name, can_edit, email in DEMO_EMPLOYEES:
        await repos.employees.create(
            tenant_id,
            EmployeeCreate(
                full_name=full_name,
                display_name=display_name,
                team_id=team_ids[team_idx],
                can_edit=can_edit,
                email=email,
            ),
        )
        employees += 1

    summary = SeedSummary(tenant_id=tenant_id, tenant_created=created, teams=len(team_ids), employees=employees)
    log_event(
        logger,
        "demo_data.seeded",
        severity="INFO",
        tenant_id=tenant_id,
        tenant_created=created,
        teams=summary.teams,
        employees=summary.employees,
    )
    return summary


async def purge_tenant_data(repos: Repositories, tenant_id: str) -> PurgeSummary:
    """
    Delete every employee, then every team, of one tenant.

    Employees go first so no team is ever deleted while referenced. Records,
    views and the tenant document itself are left alone.
    """
    employees = await repos.employees.list_all(tenant_id)
    for emp in employees:
        await repos.employees.delete(tenant_id, emp.id)

    teams = await repos.teams.list_all(tenant_id)
    for team in teams:
        await repos.teams.delete(tenant_id, team.id)

    log_event(
        logger,
        "demo_data.purged",
        severity="WARNING",
        tenant_id=tenant_id,
        employees_deleted=len(employees),
        teams_deleted=len(teams),
    )
    return PurgeSummary(tenant_id=tenant_id, employees_deleted=len(employees), teams_deleted=len(teams))
