"""Command-line interface for the organisation admin service."""

from __future__ import annotations
import argparse
import logging
import sys
from typing import Sequence

from orgadmin.config import Settings, load_settings
from orgadmin.database import Database
from orgadmin.errors import ServiceError
from orgadmin.models import PendingApprovalNotification
from orgadmin.tokens import generate_secret

logger = logging.getLogger("orgadmin.main")

known_commands = {"serve", "init-db", "retry-cleanups", "generate-secret", "resend-approval"}


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Organisation admin service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on (default: 8000)")

    subparsers.add_parser("init-db", help="Initialise the service's SQLite state file")
    subparsers.add_parser(
        "retry-cleanups",
        help="Retry profile deletions left behind by partially failed account removals",
    )
    subparsers.add_parser("generate-secret", help="Print a new random decision-link secret")

    resend_parser = subparsers.add_parser(
        "resend-approval",
        help="Email management a fresh approve/decline pair for a pending user",
    )
    resend_parser.add_argument("user_id", help="Auth user id of the pending applicant")

    args_list = list(argv) if argv is not None else sys.argv[1:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", database.path)
    return database


def _serve(settings: Settings, *, host: str, port: int) -> None:
    from orgadmin.service import create_app
    import uvicorn

    logger.info("Starting organisation admin service on http://%s:%s", host, port)
    app = create_app(settings=settings)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _retry_cleanups(settings: Settings) -> int:
    from orgadmin.service import create_app

    app = create_app(settings=settings)
    resolved, remaining = app.state.remover.retry_pending()
    print(f"Resolved {resolved} pending cleanup(s); {remaining} remaining.")
    return 0 if remaining == 0 else 1


def _resend_approval(settings: Settings, user_id: str) -> int:
    from orgadmin.service import create_app

    app = create_app(settings=settings)
    try:
        profile = app.state.directory.get_profile(user_id)
        if profile is None:
            print(f"No profile found for user {user_id!r}", file=sys.stderr)
            return 1
        if not profile.is_pending:
            print(f"User {user_id!r} is already active; nothing to approve.", file=sys.stderr)
            return 1
        app.state.registration.notify(PendingApprovalNotification.from_profile(profile))
    except ServiceError as exc:
        print(f"Failed to send approval request: {exc.message}", file=sys.stderr)
        return 1

    print(f"Approval request for {profile.full_name or user_id} sent to {settings.management_mailbox}.")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)

    if args.command == "generate-secret":
        print(generate_secret())
        return 0

    settings = load_settings()

    if args.command == "serve":
        _serve(settings, host=args.host, port=args.port)
    elif args.command == "init-db":
        _initialise_database(settings)
        print("Database initialisation complete.")
    elif args.command == "retry-cleanups":
        return _retry_cleanups(settings)
    elif args.command == "resend-approval":
        return _resend_approval(settings, args.user_id)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
