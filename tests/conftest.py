import asyncio
import inspect
from collections.abc import Iterator
from pathlib import Path
import sys

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tunequeue.config import AppConfig, load_config, override_runtime_env
from tunequeue.main import create_app
from tunequeue.orchestrator.bootstrap import QueueServices, build_queue_services
from tunequeue.store.memory import MemoryStore

from tests.support.stubs import ManualClock


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    marker = pyfuncitem.get_closest_marker("asyncio")
    if marker is None:
        return None
    test_func = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_func):
        return None
    fixtureinfo = getattr(pyfuncitem, "_fixtureinfo", None)
    if fixtureinfo is None:
        return None
    kwargs = {name: pyfuncitem.funcargs[name] for name in fixtureinfo.argnames}
    asyncio.run(test_func(**kwargs))
    return True


def _test_env(tmp_path: Path) -> dict[str, str]:
    downloads_dir = tmp_path / "downloads"
    downloads_dir.mkdir(parents=True, exist_ok=True)
    return {
        "TUNEQUEUE_ENV_FILE": str(tmp_path / "missing.env"),
        "STORE_BACKEND": "memory",
        "STORE_KEY_PREFIX": "test",
        "DOWNLOADS_DIR": str(downloads_dir),
        "SPOTIFY_CLIENT_ID": "test-client",
        "SPOTIFY_CLIENT_SECRET": "test-secret",
        "WORKER_TICK_MS": "60000",
        "PROGRESS_HEARTBEAT_S": "1",
        "PROGRESS_CLOSE_GRACE_MS": "50",
    }


@pytest.fixture(autouse=True)
def _test_environment(tmp_path: Path) -> Iterator[dict[str, str]]:
    env = _test_env(tmp_path)
    override_runtime_env(env)
    try:
        yield env
    finally:
        override_runtime_env(None)


@pytest.fixture()
def config(_test_environment: dict[str, str]) -> AppConfig:
    return load_config(_test_environment)


@pytest.fixture()
def downloads_root(config: AppConfig) -> Path:
    return Path(config.fetcher.downloads_dir)


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def services(config: AppConfig, store: MemoryStore, clock: ManualClock) -> QueueServices:
    return build_queue_services(config, store=store, clock=clock)


@pytest.fixture()
def app(config: AppConfig, services: QueueServices) -> FastAPI:
    return create_app(config, services=services)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client
