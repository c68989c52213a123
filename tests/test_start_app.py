import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

import config  # noqa: E402
import start_app  # noqa: E402
from start_app import main  # noqa: E402


@pytest.fixture
def uvicorn_calls(monkeypatch):
    calls = []

    def fake_uvicorn_run(*args, **kwargs):
        calls.append((args, kwargs))

    monkeypatch.setattr(start_app, "uvicorn", type("U", (), {"run": fake_uvicorn_run}))
    yield calls
    config.get_settings.cache_clear()


def test_unavailable_store_exits(monkeypatch, capsys, uvicorn_calls):
    async def broken(settings):
        raise OSError("disk full")

    monkeypatch.setattr(start_app, "_prepare_store", broken)

    with pytest.raises(SystemExit) as excinfo:
        main([])

    assert "order store unavailable: disk full" in capsys.readouterr().err
    assert excinfo.value.code == 1
    assert uvicorn_calls == []


@pytest.mark.parametrize(
    "argv, env", [(["--skip-schema"], None), ([], "1")], ids=["flag", "env"]
)
def test_skip_schema(monkeypatch, uvicorn_calls, argv, env):
    async def fail(settings):
        raise AssertionError("schema creation should be skipped")

    monkeypatch.setattr(start_app, "_prepare_store", fail)
    if env is None:
        monkeypatch.delenv("SKIP_STORE_SCHEMA", raising=False)
    else:
        monkeypatch.setenv("SKIP_STORE_SCHEMA", env)

    main(argv + ["--port", "9001"])

    (args, kwargs), = uvicorn_calls
    assert args == ("orderhub.app.main:create_app",)
    assert kwargs["factory"] is True
    assert kwargs["port"] == 9001


def test_creates_schema_before_serving(monkeypatch, tmp_path, uvicorn_calls):
    db = tmp_path / "boot.db"
    monkeypatch.setenv("STORE_URL", f"sqlite+aiosqlite:///{db}")
    monkeypatch.delenv("SKIP_STORE_SCHEMA", raising=False)

    main([])

    assert db.exists()
    assert len(uvicorn_calls) == 1
