from __future__ import annotations

import pytest
from sqlalchemy import select

from api.db import get_engine, init_db, reset_engine_cache, session_scope
from api.db_models import GroupRecord
from api.repository import FileRepository


@pytest.fixture()
def sqlite_env(tmp_path, monkeypatch):
    monkeypatch.delenv("FG_DB_URL", raising=False)
    monkeypatch.setenv("FG_SQLITE_PATH", str(tmp_path / "nested" / "scope.db"))
    reset_engine_cache()
    yield tmp_path
    reset_engine_cache()


def test_engine_follows_env_and_creates_parent_dir(sqlite_env):
    engine = get_engine()
    assert engine is get_engine()
    init_db()
    assert (sqlite_env / "nested" / "scope.db").exists()


def test_session_scope_commits(sqlite_env):
    init_db()
    with session_scope() as session:
        FileRepository(session).add_group("Everyone", is_default=True)

    with session_scope() as session:
        rows = session.execute(select(GroupRecord)).scalars().all()
        assert [(r.name, r.is_default) for r in rows] == [("Everyone", True)]


def test_session_scope_rolls_back_on_error(sqlite_env):
    init_db()
    with pytest.raises(RuntimeError):
        with session_scope() as session:
            FileRepository(session).add_group("Transient")
            raise RuntimeError("boom")

    with session_scope() as session:
        assert FileRepository(session).group_registry().default_group_ids() == frozenset()
        assert len(FileRepository(session).group_registry()) == 0
