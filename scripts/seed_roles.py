#!/usr/bin/env python3
"""Seed the database with the default roles and content permissions.

Usage:
    python scripts/seed_roles.py
"""

import asyncio
import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from openblind_auth.common.config import get_settings
from openblind_auth.common.database import DatabaseManager
from openblind_auth.identity.roles import DEFAULT_GRANTS, RoleService


async def seed_roles() -> None:
    settings = get_settings()
    db = DatabaseManager(settings)
    await db.init()
    await db.create_all()

    svc = RoleService()

    async with db.get_session() as session:
        await svc.seed_defaults(session)
        for role_name in DEFAULT_GRANTS:
            granted = await svc.permissions_of_role(session, role_name)
            print(f"  [seeded] {role_name}: {len(granted)} permissions")

    await db.close()
    print(f"\nDone. {len(DEFAULT_GRANTS)} roles seeded.")


if __name__ == "__main__":
    asyncio.run(seed_roles())
