"""Tests for the engine singleton."""
from unittest.mock import patch

import pytest
from sqlalchemy import inspect

from fieldsync.config import Settings
from fieldsync.db import engine as engine_module


@pytest.fixture(autouse=True)
def reset_engine():
    engine_module._engine = None
    yield
    engine_module._engine = None


class TestGetEngine:
    def test_creates_queue_table(self, tmp_path):
        settings = Settings(_env_file=None, database_url=f"sqlite:///{tmp_path / 'queue.db'}")
        with patch("fieldsync.db.engine.get_settings", return_value=settings):
            engine = engine_module.get_engine()

        assert "syncqueueitem" in inspect(engine).get_table_names()
        index_names = {ix["name"] for ix in inspect(engine).get_indexes("syncqueueitem")}
        assert "ix_syncqueueitem_status" in index_names

    def test_returns_same_engine(self, tmp_path):
        settings = Settings(_env_file=None, database_url=f"sqlite:///{tmp_path / 'queue.db'}")
        with patch("fieldsync.db.engine.get_settings", return_value=settings):
            assert engine_module.get_engine() is engine_module.get_engine()
