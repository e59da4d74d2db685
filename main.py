#!/usr/bin/env python3
"""
TokenGate -- operator commands.

Usage:
  python main.py secret
  python main.py secret --bytes 64
  python main.py check-config

Environment variables (read by check-config, see core/config.py):
  ENVIRONMENT      "production" enables the production posture checks.
  JWT_SECRET       Token signing secret. Required in production.
  JWT_EXPIRES_IN   Token lifetime: seconds, or e.g. 1w / 7d / 2.5h / 30m.
  JWT_ISSUER       iss claim stamped on and required of every token.
  JWT_AUDIENCE     aud claim stamped on and required of every token.
  BCRYPT_ROUNDS    Password hashing cost (4-31, default 10).
  DATABASE_URL     SQLAlchemy URL for the user store.
"""

import argparse
import secrets
import sys
from typing import Optional

from pydantic import ValidationError

from core.config import Settings, check_secret_strength

MIN_SECRET_BYTES = 32


def generate_secret(num_bytes: int = 48) -> str:
    """Return a URL-safe random secret suitable for JWT_SECRET.

    48 random bytes encode to 64 characters, comfortably above the 32
    character minimum enforced by Settings. Draws that happen to spell a
    weak pattern are discarded, so the result passes the production checks.
    """
    if num_bytes < MIN_SECRET_BYTES:
        raise ValueError(f"Secret must be at least {MIN_SECRET_BYTES} bytes.")
    while True:
        candidate = secrets.token_urlsafe(num_bytes)
        try:
            check_secret_strength(candidate)
        except ValueError:
            continue
        return candidate


def check_config() -> int:
    """Load Settings from the environment. Returns a process exit code."""
    try:
        settings = Settings()
    except ValidationError as exc:
        for err in exc.errors():
            print(f"  [!] {err['msg']}", file=sys.stderr)
        return 1
    print(f"  environment:    {settings.environment}")
    print(f"  token lifetime: {settings.jwt_expires_in}s")
    print(f"  bcrypt rounds:  {settings.bcrypt_rounds}")
    print("  Configuration OK.")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="tokengate",
        description="Operator commands for the TokenGate credential service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py secret >> .env.production
  ENVIRONMENT=production python main.py check-config
        """,
    )
    sub = parser.add_subparsers(dest="command")

    secret_cmd = sub.add_parser("secret", help="Print a new random JWT signing secret")
    secret_cmd.add_argument(
        "--bytes",
        type=int,
        default=48,
        metavar="N",
        help=f"Random bytes before encoding (default: 48, minimum: {MIN_SECRET_BYTES})",
    )
    sub.add_parser("check-config", help="Validate the configuration the server would start with")

    args = parser.parse_args(argv)

    if args.command == "secret":
        if args.bytes < MIN_SECRET_BYTES:
            parser.error(f"--bytes must be at least {MIN_SECRET_BYTES}")
        print(f"JWT_SECRET={generate_secret(args.bytes)}")
        return 0
    if args.command == "check-config":
        return check_config()

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
