"""Load watcher settings (YAML) and env configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from subwatch.log import get_logger
from subwatch.preferences import PreferenceRuleSet, rules_from_config

log = get_logger(__name__)

load_dotenv()

ROOT_DIR: Path = Path(__file__).resolve().parent.parent
CONFIG_DIR: Path = ROOT_DIR / "config"
SETTINGS_PATH: Path = CONFIG_DIR / "settings.yaml"
REPORTS_DIR: Path = ROOT_DIR / "reports"
DATA_DIR: Path = ROOT_DIR / "data"
SESSION_CACHE_PATH: Path = DATA_DIR / "session_cache.json"


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def ensure_dirs() -> None:
    for d in (REPORTS_DIR, DATA_DIR):
        d.mkdir(parents=True, exist_ok=True)


@dataclass
class PortalSettings:
    base_url: str = "https://willsubplus.com"
    source: str = "portal"
    page_size: int = 1000
    request_timeout: float = 20.0


@dataclass
class PollingSettings:
    enabled: bool = False
    interval_seconds: float = 300
    cycle_timeout_seconds: float = 120


@dataclass
class CacheSettings:
    scheduled_ttl_seconds: float = 300
    available_ttl_seconds: float = 60


@dataclass
class AuthSettings:
    session_ttl_hours: float = 12
    refresh_threshold: float = 0.8
    refresh_on_auth_failure: bool = True
    session_cache_path: Path = SESSION_CACHE_PATH

    @property
    def session_ttl_seconds(self) -> float:
        return self.session_ttl_hours * 3600


@dataclass
class AutoApplySettings:
    enabled: bool = False
    auto_apply_on_matches: bool = False
    dry_run: bool = True


@dataclass
class DisplaySettings:
    write_report: bool = False
    max_rows: int = 10


@dataclass
class Settings:
    portal: PortalSettings = field(default_factory=PortalSettings)
    polling: PollingSettings = field(default_factory=PollingSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    authentication: AuthSettings = field(default_factory=AuthSettings)
    auto_apply: AutoApplySettings = field(default_factory=AutoApplySettings)
    display: DisplaySettings = field(default_factory=DisplaySettings)
    rules: PreferenceRuleSet = field(default_factory=PreferenceRuleSet)


def _section(cls: type, data: Any, name: str) -> Any:
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a mapping, got {type(data).__name__}")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        log.warning("Ignoring unknown keys in '%s': %s", name, ", ".join(unknown))
    return cls(**{k: v for k, v in data.items() if k in known})


def _positive(value: Any, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ValueError(f"{name} must be a positive number, got {value!r}")


def _validate(s: Settings) -> None:
    _positive(s.polling.interval_seconds, "polling.interval_seconds")
    _positive(s.polling.cycle_timeout_seconds, "polling.cycle_timeout_seconds")
    _positive(s.cache.scheduled_ttl_seconds, "cache.scheduled_ttl_seconds")
    _positive(s.cache.available_ttl_seconds, "cache.available_ttl_seconds")
    _positive(s.authentication.session_ttl_hours, "authentication.session_ttl_hours")
    _positive(s.portal.page_size, "portal.page_size")
    _positive(s.portal.request_timeout, "portal.request_timeout")
    if not 0 < s.authentication.refresh_threshold <= 1:
        raise ValueError(
            f"authentication.refresh_threshold must be in (0, 1], got {s.authentication.refresh_threshold!r}"
        )
    if s.portal.source not in ("portal", "mock"):
        raise ValueError(f"portal.source must be 'portal' or 'mock', got {s.portal.source!r}")


def settings_from_dict(data: dict[str, Any]) -> Settings:
    auth = _section(AuthSettings, data.get("authentication"), "authentication")
    auth.session_cache_path = Path(auth.session_cache_path)
    if not auth.session_cache_path.is_absolute():
        auth.session_cache_path = ROOT_DIR / auth.session_cache_path
    settings = Settings(
        portal=_section(PortalSettings, data.get("portal"), "portal"),
        polling=_section(PollingSettings, data.get("polling"), "polling"),
        cache=_section(CacheSettings, data.get("cache"), "cache"),
        authentication=auth,
        auto_apply=_section(AutoApplySettings, data.get("auto_apply"), "auto_apply"),
        display=_section(DisplaySettings, data.get("display"), "display"),
        rules=rules_from_config(data.get("job_filtering")),
    )

    base_url = get_env("PORTAL_BASE_URL")
    if base_url:
        settings.portal.base_url = base_url
    _validate(settings)
    return settings


def load_settings(path: Path | str | None = None) -> Settings:
    """Read the settings file; malformed content fails here, never mid-cycle."""
    path = Path(path or get_env("SUBWATCH_CONFIG") or SETTINGS_PATH)
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping at the top level")

    settings = settings_from_dict(data)
    log.info("Settings loaded from %s", path)
    return settings
