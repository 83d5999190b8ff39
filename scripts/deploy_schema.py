#!/usr/bin/env python
# ============================================================================
# SCHEMA DEPLOYMENT SCRIPT
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# PURPOSE: Deploy the job store schema to PostgreSQL using PydanticToSQL
# USAGE:
#   python scripts/deploy_schema.py --dry-run    # Preview SQL
#   python scripts/deploy_schema.py              # Execute deployment
#   python scripts/deploy_schema.py --status     # Check current status
# ============================================================================

import argparse
import asyncio
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import psycopg
from psycopg import sql

from core.schema import PydanticToSQL
from repositories.database import SCHEMA, get_connection_string


async def print_status(conninfo: str, schema: str) -> int:
    """Print the jobs table row counts per state. Returns an exit code."""
    async with await psycopg.AsyncConnection.connect(conninfo) as conn:
        result = await conn.execute(
            "SELECT 1 FROM information_schema.tables WHERE table_schema = %s AND table_name = 'jobs'",
            (schema,),
        )
        if await result.fetchone() is None:
            print(f"Table {schema}.jobs does not exist")
            return 1

        result = await conn.execute(
            sql.SQL("SELECT state::text, COUNT(*) FROM {} GROUP BY state ORDER BY state").format(
                sql.Identifier(schema, "jobs")
            )
        )
        rows = await result.fetchall()

    print(f"Table {schema}.jobs exists")
    if rows:
        print("\nJobs by state:")
        for state, count in rows:
            print(f"  - {state}: {count}")
    return 0


async def deploy(conninfo: str, schema: str, dry_run: bool) -> int:
    generator = PydanticToSQL(schema_name=schema)

    if dry_run:
        for stmt in generator.generate_all():
            print(stmt.as_string(None))
            print(";\n")
        return 0

    async with await psycopg.AsyncConnection.connect(conninfo) as conn:
        count = await generator.execute(conn)
        await conn.commit()

    print(f"Executed {count} statements")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Deploy the job store schema to PostgreSQL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/deploy_schema.py --dry-run     # Preview DDL without executing
  python scripts/deploy_schema.py               # Deploy schema
  python scripts/deploy_schema.py --status      # Check current installation

Environment Variables:
  DATABASE_URL          Full PostgreSQL connection string
  POSTGRES_HOST         Database host (default: localhost)
  POSTGRES_DB           Database name (default: postgres)
  POSTGRES_USER         Database user (default: postgres)
  POSTGRES_PASSWORD     Database password
  POSTGRES_PORT         Database port (default: 5432)
  POSTGRES_SSLMODE      SSL mode (default: prefer)
  DB_SCHEMA             Target schema (default: workflows)
        """
    )
    parser.add_argument("--dry-run", action="store_true", help="Print DDL without executing")
    parser.add_argument("--status", action="store_true", help="Check current installation status")
    parser.add_argument("--connection", type=str, help="PostgreSQL connection string (overrides environment)")
    parser.add_argument("--schema", type=str, default=SCHEMA, help="Target schema")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    print("=" * 70)
    print("Workflow Orchestrator - Schema Deployment")
    print("=" * 70)
    print(f"Schema: {args.schema}")
    print(f"Mode: {'STATUS' if args.status else 'DRY RUN' if args.dry_run else 'EXECUTE'}")
    print("=" * 70)

    conninfo = args.connection or (None if args.dry_run else get_connection_string())

    try:
        if args.status:
            code = asyncio.run(print_status(conninfo, args.schema))
        else:
            code = asyncio.run(deploy(conninfo, args.schema, args.dry_run))
    except psycopg.Error as e:
        print(f"Deployment failed: {e}")
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
