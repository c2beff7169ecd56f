#!/usr/bin/env python3
"""Entry point: poll the substitute-jobs portal.

    python run_watcher.py          # poll on the configured interval
    python run_watcher.py --once   # single cycle, then exit
"""
from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from subwatch.log import get_logger
from subwatch.config import SETTINGS_PATH, ensure_dirs, get_env, load_settings

log = get_logger(__name__)


def _check_setup() -> bool:
    """Return True if the settings file is missing."""
    path = Path(get_env("SUBWATCH_CONFIG") or SETTINGS_PATH)
    if not path.exists():
        print()
        print(f"  No settings found at {path}.")
        print("  Copy config/settings.example.yaml to config/settings.yaml and edit it.")
        print()
        return True
    return False


if __name__ == "__main__":
    if _check_setup():
        sys.exit(1)

    from subwatch.agent import Watcher
    from subwatch.scheduler import PollScheduler

    ensure_dirs()
    settings = load_settings()
    watcher = Watcher.from_settings(settings)
    scheduler = PollScheduler(watcher.run_cycle, settings.polling.interval_seconds)

    if "--once" in sys.argv or not settings.polling.enabled:
        log.info("Polling disabled or --once given; running a single cycle")
        sys.exit(0 if scheduler.run_once() else 1)

    try:
        scheduler.run()
    except KeyboardInterrupt:
        log.info("Interrupted, stopping after the current cycle")
        scheduler.stop()
