#!/usr/bin/env python3
"""
Operator tool for brute-force lockouts.

Shows the lockout state of an account or IP, and lifts lockouts, including
permanent ones that only an administrator can clear.

Usage:
    python scripts/manage_lockouts.py status alice
    python scripts/manage_lockouts.py status 203.0.113.7 --type IP
    python scripts/manage_lockouts.py unlock alice --actor admin@example.com
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for authguard imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from authguard.schemas.brute_force import AttemptType  # noqa: E402


async def show_status(identifier: str, attempt_type: AttemptType) -> int:
    from authguard.db.session import async_session_maker
    from authguard.services.factory import create_brute_force_guard

    guard = create_brute_force_guard(async_session_maker)
    status = await guard.get_lockout_status(identifier, attempt_type)

    if not status.locked:
        print(f"{attempt_type.value} {identifier}: not locked")
        return 0

    if status.requires_manual_unlock:
        print(f"{attempt_type.value} {identifier}: LOCKED until manually unlocked")
    else:
        print(
            f"{attempt_type.value} {identifier}: LOCKED until {status.expires_at.isoformat()} "
            f"({status.remaining_seconds}s remaining)"
        )
    return 1


async def unlock(identifier: str, attempt_type: AttemptType, actor: str) -> int:
    from authguard.db.session import async_session_maker
    from authguard.services.factory import create_brute_force_guard

    guard = create_brute_force_guard(async_session_maker)
    if await guard.unlock(identifier, attempt_type, actor_id=actor):
        print(f"Unlocked {attempt_type.value} {identifier}")
        return 0

    print(f"No active lockout for {attempt_type.value} {identifier}")
    return 1


async def main() -> int:
    parser = argparse.ArgumentParser(
        description="Inspect and lift brute-force lockouts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (("status", "Show lockout state"), ("unlock", "Lift an active lockout")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("identifier", help="Account identifier or IP address")
        sub.add_argument(
            "--type",
            choices=[t.value for t in AttemptType],
            default=AttemptType.USER.value,
            help="Lockout dimension (default: USER)",
        )
        if name == "unlock":
            sub.add_argument("--actor", required=True, help="Administrator performing the unlock")

    args = parser.parse_args()

    from authguard.core.logging import setup_logging
    setup_logging()

    attempt_type = AttemptType(args.type)
    if args.command == "status":
        return await show_status(args.identifier, attempt_type)
    return await unlock(args.identifier, attempt_type, args.actor)


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
