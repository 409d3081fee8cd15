#!/usr/bin/env python3
"""
Login Directory -- credential verification and user directory service.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py init-admin 1 admin 'initial-password'
  python main.py init-admin 1 admin 'initial-password' --db sqlite:///directory.db

Environment variables (or .env):
  DATABASE_URL       SQLAlchemy URL of the user store.
  HOST, PORT         Listen address for `serve`.
  LOG_LEVEL          DEBUG, INFO, WARNING...
  CREDENTIAL_CODEC   Digest algorithm used by `init-admin` (default sha512).

init-admin seeds an account under a chosen id so a fresh deployment has an
administrator before any client can register. It is idempotent: if a user
with that id already exists nothing is written.
"""

import argparse
import logging
import sys
from typing import Optional

from auth.codec import get_codec
from auth.models import User
from auth.store import MAX_USER_ID, LoginConflictError, StoreUnavailableError, UserStore
from core.config import get_settings

logger = logging.getLogger("logindirectory.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="logindirectory",
        description="Credential verification and user directory service.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API server")
    serve.add_argument("--host", default=None, help="Bind address (default: HOST or 127.0.0.1)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default: PORT or 50051)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")

    init = sub.add_parser("init-admin", help="Create the initial user under a chosen id")
    init.add_argument("id", help="Numeric id for the user")
    init.add_argument("login", help="Login for the user")
    init.add_argument("password", help="Plaintext password; digested before storage")
    init.add_argument("--db", dest="db_url", default=None, help="SQLAlchemy URL (default: DATABASE_URL)")
    return parser


def serve(host: Optional[str], port: Optional[int], reload: bool) -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "api.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )
    return 0


def init_admin(raw_id: str, login: str, password: str, db_url: Optional[str] = None) -> int:
    """Insert the bootstrap user. Returns a process exit code."""
    try:
        user_id = int(raw_id)
    except ValueError:
        print(f"  [!] '{raw_id}' is not an integer id.", file=sys.stderr)
        return 1
    if user_id < 0:
        print("  [!] The id must not be negative.", file=sys.stderr)
        return 1
    if user_id > MAX_USER_ID:
        print(f"  [!] The id must not exceed {MAX_USER_ID}.", file=sys.stderr)
        return 1
    if not login:
        print("  [!] The login must not be empty.", file=sys.stderr)
        return 1

    settings = get_settings()
    try:
        codec = get_codec(settings.credential_codec)
    except ValueError as exc:
        print(f"  [!] {exc}", file=sys.stderr)
        return 1

    user = User(id=user_id, login=login, credential_digest=codec.digest(password))
    try:
        store = UserStore(db_url or settings.database_url)
    except StoreUnavailableError as exc:
        logger.error("Database error: %s", exc)
        return 1
    try:
        created = store.save(user)
    except LoginConflictError:
        print(f"  [!] Login '{login}' already belongs to another user.", file=sys.stderr)
        return 1
    except StoreUnavailableError as exc:
        logger.error("Database error: %s", exc)
        return 1
    finally:
        store.close()

    if created:
        print(f"Created user #{user_id}: {login}")
    else:
        print(f"User #{user_id} already exists, nothing to do.")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    if args.command == "serve":
        return serve(args.host, args.port, args.reload)
    return init_admin(args.id, args.login, args.password, args.db_url)


if __name__ == "__main__":
    raise SystemExit(main())
