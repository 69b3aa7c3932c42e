"""Database initialization helper.

Creates the configured database when it does not exist, creates the job,
counter and promo code tables, and optionally seeds promo codes and credits.
Intended for local/dev environments; existing tables are left untouched.

Usage:
  python scripts/init_db.py [--code WELCOME5:1:5] [--grant user:42:3]
"""

import argparse
import asyncio
import os
import re
import sys

from sqlalchemy import text
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import create_async_engine

# Add the project root to the path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


_DB_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")


def _validate_database_name(db_name: str) -> str:
  """Validate a PostgreSQL database name used as an identifier.

  The name cannot be passed as a bind parameter for ``CREATE DATABASE``, so it
  is restricted to word characters.
  """
  if not db_name:
    raise ValueError("Target database name is empty.")
  if not _DB_NAME_PATTERN.fullmatch(db_name):
    raise ValueError("Target database name contains invalid characters (allowed: A-Z, a-z, 0-9, _).")
  return db_name


def _parse_code(raw: str) -> tuple[str, int, int | None]:
  """Parse ``CODE:credits[:max_uses]``."""
  parts = raw.split(":")
  if len(parts) not in (2, 3):
    raise argparse.ArgumentTypeError(f"Expected CODE:credits[:max_uses], got {raw!r}")
  max_uses = int(parts[2]) if len(parts) == 3 and parts[2] else None
  return parts[0].upper().strip(), int(parts[1]), max_uses


def _parse_grant(raw: str) -> tuple[str, int]:
  """Parse ``owner:amount`` where the owner itself contains a colon (``user:42``)."""
  owner, _, amount = raw.rpartition(":")
  if not owner or not amount:
    raise argparse.ArgumentTypeError(f"Expected owner:amount, got {raw!r}")
  return owner, int(amount)


async def create_database_if_not_exists(dsn: str) -> None:
  """Create the configured database if it does not already exist."""
  url = make_url(dsn)
  target_db = _validate_database_name(url.database or "")

  # Connect to the maintenance database to check/create the target DB.
  postgres_url = url.set(database="postgres")
  if postgres_url.drivername.startswith("postgresql") and "+asyncpg" not in postgres_url.drivername:
    postgres_url = postgres_url.set(drivername="postgresql+asyncpg")

  print(f"Connecting to postgres to check for database '{target_db}'...")
  # CREATE DATABASE cannot run inside a transaction.
  engine = create_async_engine(postgres_url, isolation_level="AUTOCOMMIT")
  try:
    async with engine.connect() as conn:
      result = await conn.execute(text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": target_db})
      if result.scalar() == 1:
        print(f"Database '{target_db}' already exists.")
      else:
        print(f"Database '{target_db}' does not exist. Creating...")
        await conn.execute(text(f'CREATE DATABASE "{target_db}"'))
        print(f"Database '{target_db}' created successfully.")
  finally:
    await engine.dispose()


async def create_tables_and_seed(codes: list[tuple[str, int, int | None]], grants: list[tuple[str, int]]) -> None:
  # Import after path setup so the script works when run directly.
  from actionboost.core.database import Base, dispose_engine, get_db_engine
  from actionboost.schema import PromoCode
  from actionboost.services.credits import grant_credits
  from actionboost.services.quota_guard import QuotaGuard
  from actionboost.storage.postgres_counters_repo import PostgresCounterRepository

  engine = get_db_engine()
  if engine is None:
    raise RuntimeError("ACTIONBOOST_PG_DSN is not set.")
  try:
    async with engine.begin() as conn:
      await conn.run_sync(Base.metadata.create_all)
      print("Tables are in place.")
      for code, credits, max_uses in codes:
        stmt = insert(PromoCode).values(code=code, credits=credits, max_uses=max_uses).on_conflict_do_update(index_elements=[PromoCode.code], set_={"credits": credits, "max_uses": max_uses})
        await conn.execute(stmt)
        print(f"Seeded promo code {code} (credits={credits}, max_uses={max_uses or 'unlimited'}).")

    quota = QuotaGuard(PostgresCounterRepository())
    for owner, amount in grants:
      snapshot = await grant_credits(quota, owner, amount)
      print(f"Granted {amount} credit(s) to {owner}; {snapshot.remaining} remaining.")
  finally:
    await dispose_engine()


async def main() -> None:
  parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
  parser.add_argument("--code", action="append", type=_parse_code, default=[], help="Seed a promo code as CODE:credits[:max_uses]")
  parser.add_argument("--grant", action="append", type=_parse_grant, default=[], help="Grant credits as owner:amount, e.g. user:42:3")
  args = parser.parse_args()

  from actionboost.config import get_settings

  dsn = get_settings().pg_dsn
  if not dsn:
    print("Error: ACTIONBOOST_PG_DSN is not set.")
    sys.exit(1)

  try:
    await create_database_if_not_exists(dsn)
    await create_tables_and_seed(args.code, args.grant)
  except Exception as e:
    print(f"Error initializing database: {e}")
    sys.exit(1)


if __name__ == "__main__":
  asyncio.run(main())
