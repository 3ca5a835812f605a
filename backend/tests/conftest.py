import asyncio
import os
import tempfile
from pathlib import Path

_TMP = Path(tempfile.mkdtemp(prefix="dental_erp_tests_"))

os.environ.setdefault("SQLITE_DATABASE_URI", f"sqlite:///{_TMP / 'api.db'}")
os.environ.setdefault("LOG_DIR", str(_TMP / "logs"))
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("SEED_PRICING_RULES", "true")

from fastapi.testclient import TestClient  # noqa: E402
import pytest  # noqa: E402

from dental_erp.db.base import Base  # noqa: E402
from dental_erp.db.session import build_engine, build_sessionmaker  # noqa: E402
from dental_erp.main import app  # noqa: E402


@pytest.fixture(scope="session")
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def run_db(tmp_path):
    """
    Run ``scenario(Session)`` on a fresh database file in one event loop.

    Usage:
        def test_x(run_db):
            async def scenario(Session): ...
            run_db(scenario)
    """
    def runner(scenario):
        async def main():
            engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            try:
                return await scenario(build_sessionmaker(engine))
            finally:
                await engine.dispose()
        return asyncio.run(main())
    return runner

