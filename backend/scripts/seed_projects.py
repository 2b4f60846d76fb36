"""Register or toggle a LiveKit project so its webhooks are accepted.

Usage:
    python scripts/seed_projects.py --slug acme --org-id <org uuid>
    python scripts/seed_projects.py --slug acme --org-id <org uuid> --inactive
"""

import argparse
import asyncio

from sqlalchemy import select

from callsync.config import get_settings
from callsync.database import create_engine, create_session_maker, init_models
from callsync.models.project import Project


async def seed_project(session_maker, slug: str, org_id: str, is_active: bool) -> Project:
    async with session_maker() as db:
        result = await db.execute(select(Project).where(Project.slug == slug))
        project = result.scalar_one_or_none()
        if project is None:
            project = Project(slug=slug, org_id=org_id, is_active=is_active)
            db.add(project)
        else:
            project.org_id = org_id
            project.is_active = is_active
        await db.commit()
        return project


async def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--slug", required=True)
    parser.add_argument("--org-id", required=True)
    parser.add_argument("--inactive", action="store_true", help="register the project disabled")
    args = parser.parse_args(argv)

    settings = get_settings()
    engine = create_engine(settings)
    if engine is None:
        raise SystemExit("DATABASE_URL is not set")

    try:
        await init_models(engine)
        project = await seed_project(
            create_session_maker(engine), args.slug, args.org_id, not args.inactive
        )
        print(f"{project!r} -> org {project.org_id}")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
