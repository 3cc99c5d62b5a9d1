from __future__ import annotations

from alembic import command
from sqlalchemy import create_engine, inspect

from forecourt.database.init_db import build_alembic_config
from forecourt.models import Base


def test_upgrade_builds_the_mapped_schema_and_downgrade_removes_it(tmp_path):
    database_url = f"sqlite:///{tmp_path / 'migrated.db'}"
    cfg = build_alembic_config(database_url)

    command.upgrade(cfg, "head")

    engine = create_engine(database_url)
    try:
        inspector = inspect(engine)
        tables = set(inspector.get_table_names()) - {"alembic_version"}
        assert tables == set(Base.metadata.tables)
        for name, table in Base.metadata.tables.items():
            migrated = {column["name"] for column in inspector.get_columns(name)}
            assert migrated == {column.name for column in table.columns}, name

        command.downgrade(cfg, "base")
        assert set(inspect(engine).get_table_names()) <= {"alembic_version"}
    finally:
        engine.dispose()
