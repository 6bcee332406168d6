#!/usr/bin/env python3
"""One-shot audit retention sweep plus expired challenge purge."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path


def _parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Delete audit events past retention and expired challenges.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report how many audit events would be deleted without writing changes.",
    )
    return parser.parse_args()


def main() -> int:
    """Run cleanup workflow."""
    args = _parse_args()
    project_root = Path(__file__).resolve().parents[1]
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))

    from dotenv import load_dotenv

    from deviceauth.audit.service import AuditLogger
    from deviceauth.auth.challenges import ChallengeStore
    from deviceauth.core.config import AppConfig, ConfigError
    from deviceauth.core.context import AppContext

    load_dotenv(project_root / ".env")
    config = AppConfig.from_env()
    try:
        context = AppContext.build(config, app_root=project_root)
    except ConfigError as exc:
        print(f"Configuration error: {exc}")
        return 2

    try:
        audit_logger = AuditLogger(
            context.database,
            context.cipher,
            retention_days=config.audit.retention_days,
        )
        print(f"Database: {context.database.path}")
        print(f"Retention days: {audit_logger.retention_days}")
        if args.dry_run:
            print("Mode: dry-run")
            print(f"Audit events past retention: {audit_logger.count_expired()}")
            return 0

        deleted_events = audit_logger.cleanup()
        purged_challenges = ChallengeStore(
            context.database, ttl_seconds=config.challenge.ttl_seconds
        ).purge_expired()
        print("Mode: write")
        print(f"Deleted audit events: {deleted_events}")
        print(f"Purged expired challenges: {purged_challenges}")
        return 0
    finally:
        context.close()


if __name__ == "__main__":
    raise SystemExit(main())
