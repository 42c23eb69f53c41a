"""
jobless.config — YAML Configuration Loader
===========================================

Reads ``config.yaml`` for **infrastructure-only** settings (community
identity, API port, the timezone used for daily windows and active hours,
engagement review policy).  Badge and scoring-rule catalogues live in the
database and are edited by administrators, never here.

Usage::

    from jobless.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.community_name)    # "Jobless"
    print(cfg.tz)                # ZoneInfo('Europe/Istanbul')
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class JoblessConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # API
    api_port: int

    # Clock used for "today" (daily limits) and scoring-rule active hours
    timezone: str = "UTC"

    # When True, recorded engagements skip manual review and are credited
    # immediately with status ``auto_verified``.
    auto_verify_engagements: bool = False

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> JoblessConfig:
    """Read *path* and return a :class:`JoblessConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh)

    return JoblessConfig(
        community_name=raw["community_name"],
        api_port=int(raw["api_port"]),
        timezone=raw.get("timezone") or "UTC",
        auto_verify_engagements=bool(raw.get("auto_verify_engagements", False)),
    )
