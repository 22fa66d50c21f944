from __future__ import annotations

import os

# Set deterministic, writable defaults before importing modules that may touch DB paths.
os.environ.setdefault("FG_ENV", "test")
os.environ.setdefault("FG_SQLITE_PATH", "/tmp/filegate/fg-conftest.db")
os.environ.setdefault("FG_FILE_STORE_DIR", "/tmp/filegate/files")

from typing import Callable, Iterable, List

import pytest

from api.db import build_engine, build_sessionmaker, init_db
from api.file_store import LocalFileStore
from api.repository import FileRepository
from contracts.access_types import Principal
from engine.classification import ClassificationLattice
from services.audit import AuditLogger
from services.file_lifecycle import FileLifecycleService
from tests.fixtures.access import G1, G2, G3, G_DEFAULT


class RecordingAuditLogger(AuditLogger):
    def __init__(self) -> None:
        super().__init__(enabled=True)
        self.events: List[dict] = []

    def log_event(self, event: dict) -> None:
        self.events.append(dict(event))
        super().log_event(event)

    def last(self) -> dict:
        assert self.events, "no audit events recorded"
        return self.events[-1]


@pytest.fixture(autouse=True)
def _restore_env():
    before = dict(os.environ)
    yield
    os.environ.clear()
    os.environ.update(before)


@pytest.fixture()
def lattice() -> ClassificationLattice:
    return ClassificationLattice()


@pytest.fixture()
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'fg-test.db'}")
    init_db(engine)
    factory = build_sessionmaker(engine)
    with factory() as session:
        repo = FileRepository(session)
        repo.add_group("G1", group_id=G1)
        repo.add_group("G2", group_id=G2)
        repo.add_group("G3", group_id=G3)
        repo.add_group("Everyone", group_id=G_DEFAULT, is_default=True)
        session.commit()
    yield factory
    engine.dispose()


@pytest.fixture()
def store(tmp_path) -> LocalFileStore:
    return LocalFileStore(tmp_path / "files")


@pytest.fixture()
def audit() -> RecordingAuditLogger:
    return RecordingAuditLogger()


@pytest.fixture()
def service(session_factory, store, lattice, audit) -> FileLifecycleService:
    return FileLifecycleService(
        session_factory=session_factory,
        store=store,
        lattice=lattice,
        audit=audit,
    )


@pytest.fixture()
def make_document(session_factory) -> Callable[..., str]:
    def _make(
        classification: str = "SECRET",
        releasable_to: Iterable[str] = (),
        eyes_only: Iterable[str] = (),
        title: str = "Report",
    ) -> str:
        with session_factory() as session:
            row = FileRepository(session).add_document(
                title,
                classification,
                releasable_to=releasable_to,
                eyes_only=eyes_only,
            )
            session.commit()
            return row.id

    return _make


@pytest.fixture()
def make_principal(lattice) -> Callable[..., Principal]:
    def _make(clearance: str = "SECRET", *groups: str, username: str = "analyst") -> Principal:
        return Principal(
            principal_id=f"user-{username}",
            username=username,
            clearance=lattice.get(clearance),
            groups=frozenset(groups),
        )

    return _make


@pytest.fixture()
def admin(make_principal) -> Principal:
    return make_principal("TOP_SECRET", G1, G2, G3, username="admin")
