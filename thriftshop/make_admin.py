from __future__ import annotations

import argparse
import logging
import sys

from .db import get_conn


_log = logging.getLogger("thriftshop.make_admin")


def make_admin(email: str) -> bool:
    e = (email or "").strip().lower()
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT id FROM thriftshop.users WHERE email = %s;", (e,))
            row = cur.fetchone()
            if row is None:
                _log.error("User %s not found. Make sure the user has signed up first.", e)
                return False
            user_id = str(row[0])
            cur.execute(
                """
                INSERT INTO thriftshop.user_roles (user_id, role) VALUES (%s, 'admin')
                ON CONFLICT (user_id) DO UPDATE SET role = 'admin';
                """,
                (user_id,),
            )
        conn.commit()

    _log.info("%s (user_id=%s) is now an admin", e, user_id)
    return True


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    parser = argparse.ArgumentParser(description="Grant the admin role to a signed-up user")
    parser.add_argument("email")
    args = parser.parse_args()

    if not make_admin(args.email):
        sys.exit(1)


if __name__ == "__main__":
    main()
