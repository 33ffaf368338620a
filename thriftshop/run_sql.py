from __future__ import annotations

import argparse
import logging
from pathlib import Path

import psycopg

from .config import PostgresConfig
from .db import get_conn


_log = logging.getLogger("thriftshop.run_sql")


def run_sql_file(sql_path: Path, stop_on_error: bool = False) -> bool:
    sql = sql_path.read_text(encoding="utf-8")
    cfg = PostgresConfig()
    with get_conn(cfg) as conn:
        try:
            conn.execute(sql, prepare=False)
            conn.commit()
        except psycopg.Error:
            if stop_on_error:
                raise
            _log.exception("Error while applying %s", sql_path)
            return False
    _log.info("Applied %s to %s/%s", sql_path, cfg.host, cfg.database)
    return True


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    parser = argparse.ArgumentParser()
    parser.add_argument("--sql", required=True, help="Path to a .sql file")
    parser.add_argument("--stop-on-error", action="store_true", help="Stop execution on error")
    args = parser.parse_args()

    run_sql_file(Path(args.sql), stop_on_error=args.stop_on_error)


if __name__ == "__main__":
    main()
