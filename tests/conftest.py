import pathlib
import sys

import pytest
from httpx import ASGITransport, AsyncClient

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from config import Settings  # noqa: E402
from orderhub.app.db import get_engine  # noqa: E402
from orderhub.app.main import create_app  # noqa: E402
from orderhub.app.repos import OrderRepository  # noqa: E402
from orderhub.app.store import SqlPartitionStore, create_schema  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def api_settings(tmp_path) -> Settings:
    return Settings(
        store_url=f"sqlite+aiosqlite:///{tmp_path}/api.db",
        store_timeout_secs=2.0,
        fanout_concurrency=4,
    )


@pytest.fixture
async def app(api_settings, anyio_backend):
    engine = get_engine(api_settings.store_url)
    await create_schema(engine)
    store = SqlPartitionStore(engine)
    app = create_app(api_settings)
    app.state.store = store
    app.state.orders_repo = OrderRepository(store, settings=api_settings)
    yield app
    await engine.dispose()


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
