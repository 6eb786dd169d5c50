"""
Script to run the reference data migration
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, migration, etc.
sys.path.append(os.getcwd())

from core.config import Settings
from core.logging import setup_logging
from migration.pipeline import MigrationPipeline, run_migration

logger = logging.getLogger(__name__)

SKIP_FLAGS = {
    "skip_locations": "SKIP_LOCATIONS",
    "skip_organizations": "SKIP_ORGANIZATIONS",
    "skip_organization_locations": "SKIP_ORGANIZATION_LOCATIONS",
    "skip_users": "SKIP_USERS",
    "skip_user_groups": "SKIP_USER_GROUPS",
}


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Migrate locations, teams and users into the destination platform"
    )
    parser.add_argument("--source-file", help="Locations CSV (omit to read from the source database)")
    parser.add_argument("--users-file", help="Users CSV")
    parser.add_argument("--generate-teams", help="Location level that gets a generated team")
    for flag in SKIP_FLAGS:
        parser.add_argument(f"--{flag.replace('_', '-')}", action="store_true", dest=flag,
                            help=f"Do not migrate {flag[len('skip_'):].replace('_', ' ')}")
    parser.add_argument("--serve", action="store_true", help="Serve the status API while migrating")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    """Settings from the environment with command line overrides applied"""
    overrides = {}
    if args.source_file:
        overrides["SOURCE_FILE"] = args.source_file
    if args.users_file:
        overrides["USERS_FILE"] = args.users_file
    if args.generate_teams:
        overrides["GENERATE_TEAMS"] = args.generate_teams
    for flag, setting in SKIP_FLAGS.items():
        if getattr(args, flag):
            overrides[setting] = True
    return Settings(**overrides)


def serve(settings: Settings, host: str, port: int) -> int:
    import uvicorn
    from api.main import create_app

    pipeline = MigrationPipeline(settings)
    uvicorn.run(create_app(pipeline), host=host, port=port)
    return 0 if pipeline.status() == "success" else 1


def main(argv=None) -> int:
    args = parse_args(argv)
    settings = build_settings(args)
    setup_logging(settings)

    if args.serve:
        return serve(settings, args.host, args.port)

    summary = asyncio.run(run_migration(settings))
    if summary["status"] != "success":
        logger.error(
            f"Migration {summary['status']}: {summary['errors']} error(s), "
            f"{summary['failed_units']} failed unit(s), {summary['dropped_requests']} dropped request(s)"
        )
        return 1

    logger.info("Migration completed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
