from __future__ import annotations

import os
from pathlib import Path


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def telemetry_path() -> Path:
    return Path(
        os.getenv("PINSYNC_TELEMETRY_PATH")
        or (_repo_root() / "data" / "telemetry" / "sync_events.duckdb")
    )


def telemetry_enabled() -> bool:
    # Opt-in: the loader also runs inside tests and short-lived tools.
    v = (os.getenv("PINSYNC_TELEMETRY") or "0").strip().lower()
    return v not in {"", "0", "false", "no", "off"}
