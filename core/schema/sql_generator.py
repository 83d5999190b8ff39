# ============================================================================
# PYDANTIC TO SQL GENERATOR
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - DDL generation from Pydantic models
# PURPOSE: Generate the job store's PostgreSQL schema from the Job model
# CREATED: 19 OCT 2026
# ============================================================================
"""
Pydantic to PostgreSQL Schema Generator.

The Job model is the SINGLE SOURCE OF TRUTH for the jobs table.

Model Metadata Convention:
    - __sql_table__: Table name
    - __sql_primary_key__: Primary key column(s)
    - __sql_serial_columns__: Columns generated as BIGSERIAL
    - __sql_indexes__: List of dicts with name, columns and optionally
      type ("btree" | "gin"), unique, partial_where

Usage:
    generator = PydanticToSQL(schema_name="workflows")
    async with pool.connection() as conn:
        await generator.execute(conn)
"""

import logging
import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Type, Union, get_args, get_origin

from annotated_types import MaxLen
from pydantic import BaseModel
from pydantic.fields import FieldInfo
from psycopg import sql

logger = logging.getLogger(__name__)


# ============================================================================
# INDEX BUILDER
# ============================================================================

class IndexBuilder:
    """Builds CREATE INDEX statements; all methods are static."""

    @staticmethod
    def build(
        schema: str,
        table: str,
        name: str,
        columns: List[str],
        index_type: str = "btree",
        unique: bool = False,
        partial_where: str = None,
    ) -> sql.Composed:
        """
        Create a B-tree, unique or GIN index.

        Args:
            schema: Schema name
            table: Table name
            name: Index name
            columns: Column names (GIN uses the first only)
            index_type: "btree" or "gin"
            unique: Create a UNIQUE index
            partial_where: Optional WHERE clause for a partial index

        Returns:
            sql.Composed CREATE INDEX statement
        """
        if index_type == "gin":
            cols = sql.Identifier(columns[0])
            using = sql.SQL(" USING GIN ")
        else:
            cols = sql.SQL(", ").join(sql.Identifier(c) for c in columns)
            using = sql.SQL(" ")

        stmt = sql.SQL("CREATE {unique}INDEX IF NOT EXISTS {name} ON {schema}.{table}{using}({columns})").format(
            unique=sql.SQL("UNIQUE " if unique else ""),
            name=sql.Identifier(name),
            schema=sql.Identifier(schema),
            table=sql.Identifier(table),
            using=using,
            columns=cols,
        )

        if partial_where:
            stmt = sql.SQL("{} WHERE {}").format(stmt, sql.SQL(partial_where))

        return stmt


# ============================================================================
# GENERATOR
# ============================================================================

class PydanticToSQL:
    """
    Convert Pydantic models to PostgreSQL DDL statements.

    Analyzes models with __sql_* metadata and generates the matching
    CREATE TYPE / TABLE / INDEX statements.
    """

    TYPE_MAP = {
        str: "VARCHAR",
        int: "BIGINT",
        float: "DOUBLE PRECISION",
        bool: "BOOLEAN",
        datetime: "TIMESTAMPTZ",
        dict: "JSONB",
        list: "JSONB",
    }

    def __init__(self, schema_name: str = "workflows"):
        """
        Initialize the generator.

        Args:
            schema_name: PostgreSQL schema the tables are created in
        """
        self.schema_name = schema_name
        self.enums: Dict[str, Type[Enum]] = {}

    # =========================================================================
    # METADATA EXTRACTION
    # =========================================================================

    @staticmethod
    def get_model_metadata(model: Type[BaseModel]) -> Dict[str, Any]:
        """Extract __sql_* metadata from a model."""
        primary_key = getattr(model, "__sql_primary_key__", [])
        if isinstance(primary_key, str):
            primary_key = [primary_key]

        return {
            "table": getattr(model, "__sql_table__", None),
            "primary_key": primary_key,
            "serial_columns": getattr(model, "__sql_serial_columns__", []),
            "indexes": getattr(model, "__sql_indexes__", []),
        }

    # =========================================================================
    # TYPE CONVERSION
    # =========================================================================

    @staticmethod
    def enum_type_name(enum_class: Type[Enum]) -> str:
        return re.sub(r"(?<!^)(?=[A-Z])", "_", enum_class.__name__).lower()

    def python_type_to_sql(self, field_type: Any, field_info: FieldInfo) -> str:
        """
        Convert a Python annotation to a PostgreSQL type.

        Args:
            field_type: Annotation from the model
            field_info: Pydantic field information

        Returns:
            PostgreSQL type string
        """
        actual_type = field_type
        origin = get_origin(field_type)

        if origin is Union:
            non_null = [arg for arg in get_args(field_type) if arg is not type(None)]
            actual_type = non_null[0]
            origin = get_origin(actual_type)

        if origin in (dict, list) or actual_type in (dict, list):
            return "JSONB"

        if actual_type is str:
            for constraint in field_info.metadata or []:
                if isinstance(constraint, MaxLen):
                    return f"VARCHAR({constraint.max_length})"
            return "VARCHAR"

        if isinstance(actual_type, type) and issubclass(actual_type, Enum):
            enum_name = self.enum_type_name(actual_type)
            self.enums[enum_name] = actual_type
            return enum_name

        return self.TYPE_MAP.get(actual_type, "JSONB")

    @staticmethod
    def _is_optional(field_type: Any) -> bool:
        return get_origin(field_type) is Union and type(None) in get_args(field_type)

    # =========================================================================
    # ENUM GENERATION
    # =========================================================================

    def generate_enum(self, enum_name: str, enum_class: Type[Enum]) -> sql.Composed:
        """CREATE TYPE ... AS ENUM, skipped when the type already exists."""
        values = ", ".join(f"'{member.value}'" for member in enum_class)
        do_block = f"""
DO $$
BEGIN
    IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = '{enum_name}' AND typnamespace = (SELECT oid FROM pg_namespace WHERE nspname = '{self.schema_name}')) THEN
        CREATE TYPE "{self.schema_name}"."{enum_name}" AS ENUM ({values});
    END IF;
END$$
"""
        return sql.SQL(do_block)

    # =========================================================================
    # TABLE GENERATION
    # =========================================================================

    def generate_table(self, model: Type[BaseModel]) -> sql.Composed:
        """
        Generate CREATE TABLE DDL from a model.

        Raises:
            ValueError: model has no __sql_table__
        """
        meta = self.get_model_metadata(model)
        table_name = meta["table"]
        primary_key = meta["primary_key"]
        serial_columns = meta["serial_columns"]

        if not table_name:
            raise ValueError(f"Model {model.__name__} missing __sql_table__ attribute")

        logger.debug(f"Generating table {self.schema_name}.{table_name} from {model.__name__}")

        columns = []
        for field_name, field_info in model.model_fields.items():
            sql_type = self.python_type_to_sql(field_info.annotation, field_info)
            parts: List[sql.Composable] = [sql.Identifier(field_name), sql.SQL(" ")]

            if field_name in serial_columns:
                parts.append(sql.SQL("BIGSERIAL"))
            elif sql_type in self.enums:
                parts.append(sql.SQL("{}.{}").format(
                    sql.Identifier(self.schema_name), sql.Identifier(sql_type)
                ))
            else:
                parts.append(sql.SQL(sql_type))

            is_optional = self._is_optional(field_info.annotation)
            if not is_optional and field_name not in primary_key:
                parts.append(sql.SQL(" NOT NULL"))

            default = field_info.default
            if isinstance(default, Enum):
                parts.append(sql.SQL(" DEFAULT {}").format(sql.Literal(default.value)))
            elif isinstance(default, (bool, int, float, str)) and field_name not in serial_columns:
                parts.append(sql.SQL(" DEFAULT {}").format(sql.Literal(default)))
            elif field_info.default_factory is not None:
                if sql_type == "TIMESTAMPTZ":
                    parts.append(sql.SQL(" DEFAULT NOW()"))
                elif sql_type == "JSONB":
                    empty = "'[]'" if get_origin(field_info.annotation) is list else "'{}'"
                    parts.append(sql.SQL(f" DEFAULT {empty}"))

            columns.append(sql.Composed(parts))

        if primary_key:
            columns.append(sql.SQL("PRIMARY KEY ({})").format(
                sql.SQL(", ").join(sql.Identifier(col) for col in primary_key)
            ))

        return sql.SQL("CREATE TABLE IF NOT EXISTS {}.{} ({})").format(
            sql.Identifier(self.schema_name),
            sql.Identifier(table_name),
            sql.SQL(", ").join(columns),
        )

    # =========================================================================
    # INDEX GENERATION
    # =========================================================================

    def generate_indexes(self, model: Type[BaseModel]) -> List[sql.Composed]:
        """CREATE INDEX statements for a model's __sql_indexes__."""
        meta = self.get_model_metadata(model)
        result = []
        for idx_def in meta["indexes"]:
            columns = idx_def.get("columns", [])
            name = idx_def.get("name")
            if not columns or not name:
                continue
            result.append(IndexBuilder.build(
                self.schema_name,
                meta["table"],
                name,
                columns,
                index_type=idx_def.get("type", "btree"),
                unique=idx_def.get("unique", False),
                partial_where=idx_def.get("partial_where"),
            ))
        return result

    # =========================================================================
    # COMPLETE SCHEMA GENERATION
    # =========================================================================

    def generate_all(self) -> List[sql.Composed]:
        """
        Generate complete DDL for the job store.

        Returns:
            List of sql.Composed statements ready for execution
        """
        from core.models import Job

        statements: List[sql.Composed] = [
            sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(self.schema_name))
        ]

        # Table generation registers the enum types it references
        table = self.generate_table(Job)
        for enum_name, enum_class in self.enums.items():
            statements.append(self.generate_enum(enum_name, enum_class))
        statements.append(table)
        statements.extend(self.generate_indexes(Job))

        logger.info(f"Generated {len(statements)} DDL statements for schema {self.schema_name}")
        return statements

    async def execute(self, conn, dry_run: bool = False) -> int:
        """
        Execute all DDL statements.

        Args:
            conn: psycopg AsyncConnection
            dry_run: If True, log statements but don't execute

        Returns:
            Number of statements executed
        """
        statements = self.generate_all()

        if dry_run:
            for stmt in statements:
                logger.info(f"[DRY RUN] {stmt.as_string(conn)[:100]}...")
            return len(statements)

        async with conn.cursor() as cur:
            for stmt in statements:
                await cur.execute(stmt)

        logger.info(f"Executed {len(statements)} DDL statements")
        return len(statements)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["PydanticToSQL", "IndexBuilder"]
