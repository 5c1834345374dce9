import pytest

import batchdispatch.hooks as hooks_module
from batchdispatch.config import ENV_PREFIX, DispatcherSettings


@pytest.fixture(autouse=True)
def test_unset_env(monkeypatch):
    for name in DispatcherSettings.model_fields:
        monkeypatch.delenv(f"{ENV_PREFIX}{name.upper()}", raising=False)


@pytest.fixture(autouse=True)
def reset_hooks():
    """Restore ``httpx.AsyncClient.send`` after each test."""
    yield
    hooks_module.uninstall_hooks()


@pytest.fixture
def reset_context():
    """Clear any interceptor left active by a test."""
    token = hooks_module.active_interceptor.set(None)
    yield
    hooks_module.active_interceptor.reset(token)
