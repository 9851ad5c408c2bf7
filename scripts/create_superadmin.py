import argparse
import getpass
import sys
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1] / "src" / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.append(str(BACKEND_DIR))

from app.auth.passwords import hash_password
from app.db import auth as auth_db
from app.db import profiles as profiles_db
from app.db.leads import init_leads_tables
from app.db.questions import init_questions_table
from app.models.contact import check_password


def _ensure_schema() -> None:
    auth_db.init_auth_tables()
    profiles_db.init_profiles_tables()
    init_leads_tables()
    init_questions_table()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Create the first superadmin, or promote an existing account"
    )
    parser.add_argument("email", help="Login email of the account")
    parser.add_argument("--full-name", default=None, help="Name shown in the console")
    parser.add_argument(
        "--no-crud",
        action="store_true",
        help="Do not grant the content management privilege",
    )
    args = parser.parse_args()

    _ensure_schema()

    user = auth_db.get_user_by_email(args.email)
    if user:
        user_id = user["id"]
        print(f"Promoting existing account {args.email}")
    else:
        password = getpass.getpass("Password: ")
        try:
            check_password(password)
        except ValueError as exc:
            raise SystemExit(str(exc))
        if password != getpass.getpass("Repeat password: "):
            raise SystemExit("Passwords do not match.")
        user_id = auth_db.register_account(
            args.email, hash_password(password), full_name=args.full_name
        )
        print(f"Created account {args.email}")

    profiles_db.set_role(user_id, "superadmin")
    profiles_db.set_can_manage_crud(user_id, not args.no_crud)
    print(f"{args.email} is now a superadmin.")


if __name__ == "__main__":
    main()
