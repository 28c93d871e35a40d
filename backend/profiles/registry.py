from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterable

import yaml

from profiles.types import LoaderProfile

DEFAULT_PROFILE_ID = "home"


def _repo_root() -> Path:
    # .../backend/profiles/registry.py -> repo root is 2 levels up
    return Path(__file__).resolve().parents[2]


def _profiles_root() -> Path:
    raw = (os.getenv("PINSYNC_PROFILES_PATH") or "").strip()
    return Path(raw) if raw else _repo_root() / "profiles"


def api_base_url_override() -> str | None:
    v = (os.getenv("PINSYNC_API_BASE_URL") or "").strip()
    return v or None


@dataclass(frozen=True)
class ProfileEntry:
    config: LoaderProfile
    # Absolute path to profile.yaml on disk (useful for debugging).
    path: Path


def _iter_profile_yaml_files() -> Iterable[Path]:
    root = _profiles_root()
    if not root.exists():
        return []
    # Convention: profiles/*/profile.yaml
    return root.glob("*/profile.yaml")


def _load_yaml(path: Path) -> dict:
    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid profile yaml root: {path}")
    return data


@lru_cache(maxsize=1)
def get_registry() -> dict[str, ProfileEntry]:
    out: dict[str, ProfileEntry] = {}
    for p in sorted(_iter_profile_yaml_files(), key=lambda x: str(x)):
        cfg = LoaderProfile.model_validate(_load_yaml(p))
        if cfg.id in out:
            raise ValueError(f"Duplicate profile id {cfg.id!r}: {p}")
        out[cfg.id] = ProfileEntry(config=cfg, path=p)
    return out


def default_profile_id() -> str:
    env = (os.getenv("PINSYNC_PROFILE") or "").strip()
    reg = get_registry()
    if env and env in reg:
        return env
    if DEFAULT_PROFILE_ID in reg or not reg:
        return DEFAULT_PROFILE_ID
    return next(iter(reg.keys()))


def list_profiles() -> list[LoaderProfile]:
    return [e.config for e in get_registry().values()]


def get_profile(profile_id: str | None = None) -> LoaderProfile:
    """
    Resolve a profile by id, applying environment overrides.

    Unknown ids fall back to the default profile; with no YAML on disk the built-in
    defaults are used.
    """
    reg = get_registry()
    pid = (profile_id or "").strip() or default_profile_id()
    if pid not in reg:
        pid = default_profile_id()

    entry = reg.get(pid)
    cfg = entry.config if entry is not None else LoaderProfile(id=pid, title=pid.title())

    base_url = api_base_url_override()
    if base_url:
        cfg = cfg.model_copy(
            update={"api": cfg.api.model_copy(update={"baseUrl": base_url})}
        )
    return cfg


def clear_registry_cache() -> None:
    """
    Clear in-memory profile registry cache.

    Profile YAML changes are otherwise not picked up until the process restarts.
    """
    get_registry.cache_clear()
