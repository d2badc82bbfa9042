"""
CLI for the feed engine batch jobs.

Usage:
    # Recompute every active user's role profile
    feedengine-jobs roles

    # Recompute one user
    feedengine-jobs roles --user 64f1c2

    # Recompute and cache trending for all periods
    feedengine-jobs trending

    # Warm trending for one role
    feedengine-jobs trending --role BACKEND --days 7

    # Purge engagement older than the retention window
    feedengine-jobs cleanup

    # Run the scheduler (continuous)
    feedengine-jobs serve
"""

import argparse
import asyncio
import json
import sys

from feedengine.config import get_settings
from feedengine.core.logging import configure_logging
from feedengine.main import engine_lifespan, run_scheduler


def _print(result) -> None:
    print(json.dumps(result, indent=2, default=str))


async def cmd_roles(args):
    """Recompute dynamic role profiles."""
    async with engine_lifespan() as engine:
        if args.user:
            result = await engine.role_job.run_for_user(args.user, args.days)
            if result is None:
                print(f"Not enough engagement to update roles for {args.user}")
                return 0
        else:
            result = await engine.role_job.run(args.days)

    _print(result)
    return 1 if result.get("errors") or result.get("error") else 0


async def cmd_trending(args):
    """Recompute trending caches."""
    async with engine_lifespan() as engine:
        if args.invalidate:
            result = await engine.trending_job.invalidate()
        elif args.role:
            result = await engine.trending_job.run_for_role(args.role.upper(), args.days)
        else:
            result = await engine.trending_job.run()

    _print(result)
    return 1 if result.get("errors") else 0


async def cmd_cleanup(args):
    """Purge expired engagement events."""
    async with engine_lifespan() as engine:
        result = await engine.retention_job.run()

    _print(result)
    return 1 if result.get("errors") else 0


async def cmd_serve(args):
    """Run the batch scheduler until interrupted."""
    print("Starting scheduler")
    print("Press Ctrl+C to stop")
    await run_scheduler()
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Feed Engine - batch job CLI"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Roles command
    roles_parser = subparsers.add_parser("roles", help="Recompute role profiles")
    roles_parser.add_argument(
        "--user", "-u",
        help="Only recompute this user"
    )
    roles_parser.add_argument(
        "--days", "-d",
        type=int,
        default=None,
        help="Engagement window in days (default: 30)"
    )

    # Trending command
    trending_parser = subparsers.add_parser("trending", help="Recompute trending caches")
    trending_parser.add_argument(
        "--role", "-r",
        help="Warm trending for a single role"
    )
    trending_parser.add_argument(
        "--days", "-d",
        type=int,
        default=None,
        help="Window in days for --role (default: 7)"
    )
    trending_parser.add_argument(
        "--invalidate",
        action="store_true",
        help="Drop all trending caches instead of recomputing"
    )

    # Cleanup command
    subparsers.add_parser("cleanup", help="Purge expired engagement")

    # Serve command
    subparsers.add_parser("serve", help="Run the batch scheduler")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    settings = get_settings()
    configure_logging(settings.log_level, json_logs=settings.environment != "development")

    commands = {
        "roles": cmd_roles,
        "trending": cmd_trending,
        "cleanup": cmd_cleanup,
        "serve": cmd_serve,
    }

    try:
        return asyncio.run(commands[args.command](args))
    except KeyboardInterrupt:
        print("\nShutting down...")
        return 0


if __name__ == "__main__":
    sys.exit(main())
