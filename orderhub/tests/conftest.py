import pathlib
import sys

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from config import FanoutPolicy, ScanStrategy, Settings  # noqa: E402
from orderhub.app.db import get_engine  # noqa: E402
from orderhub.app.store import SqlPartitionStore, create_schema  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def engine(tmp_path, anyio_backend):
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path}/store.db")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def store(engine):
    return SqlPartitionStore(engine)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        scan_strategy=ScanStrategy.AUTO,
        fanout_concurrency=4,
        fanout_policy=FanoutPolicy.BEST_EFFORT,
        store_timeout_secs=2.0,
        include_legacy_orders=True,
    )
