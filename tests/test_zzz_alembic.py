"""Alembic migration tests.

The migration is rendered offline against the PostgreSQL dialect, so no
server is needed. File named test_zzz_alembic.py to sort LAST in pytest
collection order.
"""

import importlib.util
import io
import re
from pathlib import Path

import pytest
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy.dialects import postgresql

from walletsync.db import models  # noqa: F401
from walletsync.db.base import Base

MIGRATION = Path(__file__).resolve().parents[1] / "alembic" / "versions" / "001_user_state_tables.py"


@pytest.fixture(scope="module")
def migration():
    module_spec = importlib.util.spec_from_file_location("user_state_tables", MIGRATION)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


def _render(migration, step: str) -> str:
    buffer = io.StringIO()
    context = MigrationContext.configure(
        dialect=postgresql.dialect(),
        opts={"as_sql": True, "output_buffer": buffer},
    )
    with Operations.context(context):
        getattr(migration, step)()
    return buffer.getvalue()


def _create_table_block(sql: str, table: str) -> str:
    match = re.search(rf"CREATE TABLE IF NOT EXISTS {table} \((.*?)\n\s*\)", sql, re.S)
    assert match is not None, f"no CREATE TABLE for {table}"
    return match.group(1)


def test_revision_metadata(migration) -> None:
    """The first revision has no parent."""
    assert migration.revision == "001_user_state_tables"
    assert migration.down_revision is None


def test_upgrade_matches_models(migration) -> None:
    """Every ORM table and column is created by the upgrade."""
    sql = _render(migration, "upgrade")
    for table in Base.metadata.sorted_tables:
        block = _create_table_block(sql, table.name)
        for column in table.columns:
            assert re.search(rf"^\s*{column.name}\s", block, re.M), f"{table.name}.{column.name} missing"


def test_upgrade_creates_model_indexes(migration) -> None:
    """Indexes declared on the models exist in the migration."""
    sql = _render(migration, "upgrade")
    for table in Base.metadata.sorted_tables:
        for index in table.indexes:
            assert f"CREATE INDEX IF NOT EXISTS {index.name}" in sql


def test_downgrade_drops_every_table(migration) -> None:
    """Downgrade drops all four tables."""
    sql = _render(migration, "downgrade")
    for table in Base.metadata.sorted_tables:
        assert f"DROP TABLE IF EXISTS {table.name} CASCADE" in sql
