import asyncio
from types import SimpleNamespace

from studio.app.core import db


def test_get_engine_uses_env_and_sets_factory(monkeypatch):
    db._reset_engine_for_tests()

    stub_engine = SimpleNamespace(sync_engine="sync")

    def fake_make_engine(url: str):
        assert url == "postgresql+asyncpg://u:p@localhost/studio_test"
        return stub_engine

    def fake_async_sessionmaker(engine, expire_on_commit=False):
        assert engine is stub_engine
        assert expire_on_commit is False
        return "factory"

    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://u:p@localhost/studio_test")
    monkeypatch.setattr(db, "_make_engine", fake_make_engine)
    monkeypatch.setattr(db, "async_sessionmaker", fake_async_sessionmaker)

    assert db.get_engine() is stub_engine
    assert db.get_engine() is stub_engine
    assert db.get_session_factory() == "factory"

    db._reset_engine_for_tests()


def test_get_session_closes_session(monkeypatch):
    closed = []

    class StubSession:
        async def close(self):
            closed.append(True)

    monkeypatch.setattr(db, "get_session_factory", lambda: StubSession)

    async def run():
        async with db.get_session() as session:
            assert isinstance(session, StubSession)

    asyncio.run(run())
    assert closed == [True]


def test_reset_engine_clears_state():
    db._engine = "e"
    db._session_factory = "sf"

    db._reset_engine_for_tests()

    assert db._engine is None
    assert db._session_factory is None
