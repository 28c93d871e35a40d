import sys
from pathlib import Path

import pytest


# Ensure `backend/` is on sys.path so tests can import local modules
# like `sync.*`, `geo.*`, and `main`.
BACKEND_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_ROOT))


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    # Developer shells may export these; tests rely on the built-in defaults.
    for name in (
        "PINSYNC_API_BASE_URL",
        "PINSYNC_PROFILE",
        "PINSYNC_PROFILES_PATH",
        "PINSYNC_SOURCES_PATH",
        "PINSYNC_TELEMETRY",
        "PINSYNC_TELEMETRY_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    from profiles.registry import clear_registry_cache

    clear_registry_cache()
    yield
    clear_registry_cache()
    from telemetry import singleton

    singleton._holder.close()
