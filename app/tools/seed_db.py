"""Seed the database from a JSON fixture.

Usage:
    python -m app.tools.seed_db
    python -m app.tools.seed_db --data-dir data
    python -m app.tools.seed_db --drop  # drop existing data first

The fixture (``data/helpdesk.json`` by default) looks like::

    {
      "departments": [{"name": "Support", "sla_config": {"firstResponseTime": 2}}],
      "agents": [{"name": "Ann", "department": "Support", "skills": ["billing"]}],
      "administrators": [{"name": "Root", "email": "root@example.com"}],
      "rules": [{"name": "Billing RR", "rule_type": "round_robin", "priority": 10,
                 "config": {"departmentId": 1, "categories": ["billing"]}}]
    }
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters.persistence.database import async_session_factory
from app.adapters.persistence.models import (
    AdministratorModel,
    AgentModel,
    AssignmentModel,
    AssignmentRuleModel,
    DepartmentModel,
    NotificationModel,
    RoundRobinCursorModel,
    TicketModel,
)
from app.domain.entities.assignment_rule import AssignmentRule
from app.domain.exceptions import RuleConfigError
from app.domain.value_objects.rule_config import compile_rule

logging.basicConfig(level=logging.INFO, format="%(levelname)s | %(message)s")
logger = logging.getLogger(__name__)

FIXTURE_HINTS = ["helpdesk", "seed", "fixture"]


async def _drop_data(session: AsyncSession) -> None:
    """Delete all data in correct order (respecting FK constraints)."""
    for model in [
        NotificationModel,
        AssignmentModel,
        RoundRobinCursorModel,
        TicketModel,
        AssignmentRuleModel,
        AdministratorModel,
        AgentModel,
        DepartmentModel,
    ]:
        await session.execute(delete(model))
    await session.commit()
    logger.info("Dropped all existing data")


def _as_text(value) -> str | None:
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value)


async def seed(data_dir: Path, drop: bool = False) -> dict[str, int]:
    """Main seed function. Returns counts of seeded records."""
    counts = {"departments": 0, "agents": 0, "administrators": 0, "rules": 0}

    fixture = _find_fixture(data_dir)
    if not fixture:
        raise FileNotFoundError(
            f"No fixture found in {data_dir}. Expected something like helpdesk.json"
        )
    data = json.loads(fixture.read_text(encoding="utf-8"))

    async with async_session_factory() as session:
        if drop:
            await _drop_data(session)

        # 1. Departments
        for dd in data.get("departments", []):
            existing = await session.execute(
                select(DepartmentModel).where(DepartmentModel.name == dd["name"])
            )
            if existing.scalar_one_or_none():
                logger.debug("Department '%s' already exists, skipping", dd["name"])
                continue
            session.add(DepartmentModel(name=dd["name"], sla_config=_as_text(dd.get("sla_config"))))
            counts["departments"] += 1
        await session.commit()

        result = await session.execute(select(DepartmentModel))
        department_ids = {d.name: d.id for d in result.scalars()}

        # 2. Agents
        for ad in data.get("agents", []):
            dept_name = ad.get("department")
            department_id = department_ids.get(dept_name) if dept_name else None
            if dept_name and department_id is None:
                logger.warning(
                    "Agent '%s': department '%s' not found, seeding without one",
                    ad["name"], dept_name,
                )

            existing = await session.execute(
                select(AgentModel).where(AgentModel.name == ad["name"])
            )
            if existing.scalar_one_or_none():
                logger.debug("Agent '%s' already exists, skipping", ad["name"])
                continue

            session.add(AgentModel(
                name=ad["name"],
                department_id=department_id,
                skills=sorted(ad.get("skills", [])),
                is_active=ad.get("is_active", True),
                presence_status=ad.get("presence_status", "offline"),
                max_load=ad.get("max_load"),
            ))
            counts["agents"] += 1
        await session.commit()

        # 3. Administrators
        for md in data.get("administrators", []):
            existing = await session.execute(
                select(AdministratorModel).where(AdministratorModel.email == md["email"])
            )
            if existing.scalar_one_or_none():
                continue
            session.add(AdministratorModel(
                name=md["name"], email=md["email"], role=md.get("role", "Admin"),
            ))
            counts["administrators"] += 1
        await session.commit()

        # 4. Assignment rules (stored even when invalid; the engine skips them)
        for rd in data.get("rules", []):
            existing = await session.execute(
                select(AssignmentRuleModel).where(AssignmentRuleModel.name == rd["name"])
            )
            if existing.scalar_one_or_none():
                logger.debug("Rule '%s' already exists, skipping", rd["name"])
                continue

            try:
                compile_rule(AssignmentRule(
                    id=None, name=rd["name"], rule_type=rd["rule_type"], config=rd.get("config"),
                ))
            except RuleConfigError as e:
                logger.warning("Rule '%s' has an invalid config: %s", rd["name"], e.message)

            session.add(AssignmentRuleModel(
                name=rd["name"],
                rule_type=rd["rule_type"],
                priority=rd.get("priority", 0),
                enabled=rd.get("enabled", True),
                config=_as_text(rd.get("config")),
                description=rd.get("description"),
            ))
            counts["rules"] += 1
        await session.commit()

    logger.info(
        "Seed complete: %d departments, %d agents, %d administrators, %d rules",
        counts["departments"], counts["agents"], counts["administrators"], counts["rules"],
    )
    return counts


def _find_fixture(data_dir: Path) -> Path | None:
    """Find a JSON fixture matching any of the name hints."""
    for f in sorted(data_dir.glob("*.json")):
        fname_lower = f.stem.lower()
        for hint in FIXTURE_HINTS:
            if hint in fname_lower:
                logger.info("Found fixture: %s (matched hint '%s')", f.name, hint)
                return f
    return None


async def _verify_data() -> None:
    """Print sanity checks after seeding."""
    async with async_session_factory() as session:
        departments = (await session.execute(select(DepartmentModel))).scalars().all()
        agents = (await session.execute(select(AgentModel))).scalars().all()
        rules = (
            await session.execute(
                select(AssignmentRuleModel).order_by(
                    AssignmentRuleModel.priority, AssignmentRuleModel.id
                )
            )
        ).scalars().all()
        admins = await session.scalar(select(func.count()).select_from(AdministratorModel))

        print(f"\n{'='*50}")
        print("SEED VERIFICATION")
        print(f"{'='*50}")
        print(f"Departments:    {len(departments)}")
        print(f"Agents:         {len(agents)} ({sum(1 for a in agents if a.is_active)} active, "
              f"{sum(1 for a in agents if a.presence_status == 'online')} online)")
        print(f"Administrators: {admins}")
        print(f"Rules:          {len(rules)}")

        invalid = 0
        for r in rules:
            try:
                compile_rule(AssignmentRule(
                    id=r.id, name=r.name, rule_type=r.rule_type, config=r.config,
                ))
                state = "ok"
            except RuleConfigError:
                invalid += 1
                state = "INVALID"
            flag = "on " if r.enabled else "off"
            print(f"  [{flag}] {r.priority:>4} #{r.id} {r.rule_type:<18} {r.name} ({state})")
        if invalid:
            print(f"Rules with invalid config: {invalid}")
        print(f"{'='*50}\n")


def main():
    parser = argparse.ArgumentParser(description="Seed the helpdesk database from a JSON fixture")
    parser.add_argument(
        "--data-dir", type=str, default="data",
        help="Directory containing the JSON fixture (default: data)",
    )
    parser.add_argument(
        "--drop", action="store_true",
        help="Drop existing data before seeding",
    )
    parser.add_argument(
        "--verify-only", action="store_true",
        help="Only run verification, don't seed",
    )
    args = parser.parse_args()

    data_dir = Path(args.data_dir)
    if not args.verify_only and not data_dir.exists():
        logger.error("Data directory not found: %s", data_dir)
        sys.exit(1)

    if args.verify_only:
        asyncio.run(_verify_data())
    else:
        async def run_all():
            await seed(data_dir, drop=args.drop)
            await _verify_data()
        asyncio.run(run_all())


if __name__ == "__main__":
    main()
