from __future__ import annotations

import argparse
import json
import os

from checkins.infrastructure.config import DatabaseConfig
from checkins.infrastructure.db import make_engine_and_session
from checkins.utils.seed import initialise_database, seed_demo


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Create the check-in tables and seed a demo organization"
    )

    backend_default = os.environ.get("DB_BACKEND", "sqlite")
    sqlite_default = os.environ.get("DB_SQLITE_PATH", "./checkins.db")
    mysql_host_default = os.environ.get("DB_MYSQL_HOST", "localhost")
    mysql_port_default = int(os.environ.get("DB_MYSQL_PORT") or 3306)
    mysql_user_default = os.environ.get("DB_MYSQL_USER", "root")
    mysql_password_default = os.environ.get("DB_MYSQL_PASSWORD", "")
    mysql_database_default = os.environ.get("DB_MYSQL_DATABASE", "checkins")

    parser.add_argument("--backend", choices=["sqlite", "mysql"], default=backend_default)
    parser.add_argument("--sqlite-path", default=sqlite_default)
    parser.add_argument("--mysql-host", default=mysql_host_default)
    parser.add_argument("--mysql-port", type=int, default=mysql_port_default)
    parser.add_argument("--mysql-user", default=mysql_user_default)
    parser.add_argument("--mysql-password", default=mysql_password_default)
    parser.add_argument(
        "--mysql-database", "--mysql-db", dest="mysql_database", default=mysql_database_default
    )
    parser.add_argument("--organization", default="Demo Co", help="Demo organization name")
    args = parser.parse_args()

    cfg = DatabaseConfig(
        backend=args.backend,
        sqlite_path=args.sqlite_path,
        mysql_host=args.mysql_host,
        mysql_port=args.mysql_port,
        mysql_user=args.mysql_user,
        mysql_password=args.mysql_password,
        mysql_database=args.mysql_database,
    )
    engine, SessionLocal = make_engine_and_session(cfg.get_connection_url())
    initialise_database(engine)

    with SessionLocal() as session:
        ids = seed_demo(session, organization_name=args.organization)
        session.commit()
    print(json.dumps(ids, indent=2))
    print("Seed completed.")


if __name__ == "__main__":
    main()
