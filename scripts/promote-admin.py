#!/usr/bin/env python3
from __future__ import annotations

from argparse import ArgumentParser
from uuid import UUID

from db.models import UserRole
from db.session import SessionLocal
from ideas.errors import AppError
from ideas.profiles import set_role


def main() -> None:
    parser = ArgumentParser(description="Change the role of an existing profile")
    parser.add_argument("--user-id", required=True)
    parser.add_argument(
        "--role",
        default=UserRole.ADMIN.value,
        choices=[role.value for role in UserRole],
    )
    args = parser.parse_args()

    try:
        user_id = UUID(args.user_id)
    except ValueError:
        raise SystemExit(f"Not a valid user id: {args.user_id}")

    session = SessionLocal()
    try:
        profile = set_role(session, user_id, UserRole(args.role))
        print(f"[profiles] user_id={profile.id} role={profile.role}")
    except AppError as exc:
        raise SystemExit(exc.message)
    finally:
        session.close()


if __name__ == "__main__":
    main()
