"""Promote an existing Google account to admin.

The account must have signed in at least once so the user row exists.

    python seed_admin.py doctor@example.com
"""
import argparse
import sys

from dotenv import load_dotenv

load_dotenv()

from clinicdesk.bootstrap import promote_admin  # noqa: E402
from clinicdesk.core.logging import setup_logging  # noqa: E402


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Grant the admin role to a signed-in account.")
    parser.add_argument("email", help="email address of the Google account")
    args = parser.parse_args(argv)

    setup_logging()
    if not promote_admin(args.email):
        print(f"No account found for {args.email}; sign in once with Google first.", file=sys.stderr)
        return 1
    print(f"{args.email} is now an admin.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
