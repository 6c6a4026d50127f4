"""
Administrative command line for the Blood Bank Ledger.
Manage directory users and their roles, or mint tokens and inspect units while testing.
"""

import argparse
import json
import sys

from bloodbank.config import ROLES
from bloodbank.database import init_engine
from bloodbank.errors import UnknownUnit
from bloodbank.identity import JwtIdentityProvider, UnknownUser
from bloodbank.operations import get_ledger_entry
from bloodbank.rbac import set_role
from bloodbank.store import SqlDocumentStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bloodbank", description=__doc__)
    parser.add_argument("--db-uri", help="overrides DB_URI")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="create tables")

    p = sub.add_parser("add-user", help="add a user to the identity directory")
    p.add_argument("uid")
    p.add_argument("--name", dest="display_name")

    p = sub.add_parser("set-role", help="overwrite a user's role")
    p.add_argument("uid")
    p.add_argument("role", choices=sorted(ROLES))

    p = sub.add_parser("issue-token", help="print a bearer token for a user")
    p.add_argument("uid")

    p = sub.add_parser("show-unit", help="print a ledger entry")
    p.add_argument("unit_id")

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    engine = init_engine(args.db_uri)
    store = SqlDocumentStore(engine)
    identity = JwtIdentityProvider(engine)

    if args.command == "init-db":
        print("[init] Tables are ready.")

    elif args.command == "add-user":
        if identity.create_user(args.uid, args.display_name):
            print(f"[auth] Added user {args.uid}")
        else:
            print(f"[auth] User {args.uid} already exists")

    elif args.command == "set-role":
        if not identity.user_exists(args.uid):
            print(f"[ERROR] Unknown user {args.uid}", file=sys.stderr)
            return 1
        set_role(store, args.uid, args.role)
        identity.set_claims(args.uid, {"role": args.role})
        print(f"[auth] {args.uid} is now {args.role}")

    elif args.command == "issue-token":
        try:
            print(identity.issue_token(args.uid))
        except UnknownUser:
            print(f"[ERROR] Unknown user {args.uid}", file=sys.stderr)
            return 1

    elif args.command == "show-unit":
        try:
            entry = get_ledger_entry(store, args.unit_id)
        except UnknownUnit as e:
            print(f"[ERROR] {e.message}", file=sys.stderr)
            return 1
        print(json.dumps(entry, indent=2))

    return 0


if __name__ == "__main__":
    sys.exit(main())
