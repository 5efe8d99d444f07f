"""
Clinical Trial Operations - command line entry point

Runs the API server, or seeds the database and exits with ``--seed``.
"""

import argparse
import logging
import os
import sys

import uvicorn

from clinical_trial_ops.api.config import get_settings

logger = logging.getLogger(__name__)


def print_banner():
    settings = get_settings()
    print("=" * 80)
    print(f"  {settings.app_name} v{settings.app_version}")
    print("=" * 80)


def run_seed(batch_size: int) -> int:
    from clinical_trial_ops.core.error_handling import SeedingError
    from clinical_trial_ops.db.seed import seed_all
    from clinical_trial_ops.db.session import init_db, session_scope

    init_db()
    try:
        with session_scope() as session:
            inserted = seed_all(session, batch_size=batch_size)
    except SeedingError as e:
        logger.error(f"Seeding failed: {e}")
        return 1

    total = sum(inserted.values())
    print(f"Seeding complete: {total} domain records inserted")
    for domain, count in sorted(inserted.items()):
        print(f"   {domain}: {count}")
    return 0


def main(argv=None) -> int:
    settings = get_settings()

    parser = argparse.ArgumentParser(description='Clinical Trial Operations API Server')
    parser.add_argument('--host', default=settings.host, help='Host to bind to')
    parser.add_argument('--port', type=int, default=settings.port, help='Port to bind to')
    parser.add_argument('--reload', action='store_true', help='Reload on code changes')
    parser.add_argument('--seed', action='store_true', help='Seed demo and domain data, then exit')
    parser.add_argument('--no-seed', action='store_true', help='Skip seeding at startup')

    args = parser.parse_args(argv)
    logging.basicConfig(level=settings.log_level)

    if args.seed:
        return run_seed(settings.seed_batch_size)

    if args.no_seed:
        # environment rather than the cached settings so reload workers see it too
        os.environ['SEED_ON_STARTUP'] = 'false'
        get_settings.cache_clear()

    print_banner()
    print(f"   Host: {args.host}")
    print(f"   Port: {args.port}")
    print(f"   API Health: http://{args.host}:{args.port}/api/health")
    print(f"   API Docs: http://{args.host}:{args.port}/api/docs")
    print("=" * 80)

    uvicorn.run(
        "clinical_trial_ops.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == '__main__':
    sys.exit(main())
