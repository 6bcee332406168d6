#!/usr/bin/env python3
"""Print a fresh AES-256 key for AUDIT_ENCRYPTION_KEY."""

from __future__ import annotations

import argparse
import secrets


def _parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Generate a 64-hex-character audit encryption key.",
    )
    parser.add_argument(
        "--env-line",
        action="store_true",
        help="Print as an AUDIT_ENCRYPTION_KEY=... line for .env files.",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    key = secrets.token_hex(32)
    print(f"AUDIT_ENCRYPTION_KEY={key}" if args.env_line else key)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
