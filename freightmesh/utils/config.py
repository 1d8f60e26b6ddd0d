"""Configuration utilities.

Provides:
- `load_engine_config()` — loads `engine_config.yaml` (YAML preferred, JSON accepted)
- `EngineSettings` — matching thresholds and timing offsets used by the engine
- `get_settings()` — process-wide settings instance

Thresholds live in config rather than in the matching code so operations can
tune geofences and expiry windows per deployment.
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional
import json
import logging
import os

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()


def _default_config_path() -> Path:
    # FREIGHTMESH_CONFIG wins, then the packaged config/engine_config.yaml
    override = os.getenv("FREIGHTMESH_CONFIG")
    if override:
        return Path(override)
    return Path(__file__).resolve().parents[1] / "config" / "engine_config.yaml"


def load_engine_config(path: Optional[str] = None) -> dict:
    """Load engine configuration from YAML (preferred) or JSON.

    Returns empty dict if no config found.
    """
    cfg_path = Path(path) if path else _default_config_path()
    if not cfg_path.exists():
        logger.debug(f"Engine config not found at {cfg_path}")
        return {}

    text = cfg_path.read_text(encoding="utf-8")
    if cfg_path.suffix in (".yaml", ".yml"):
        return yaml.safe_load(text) or {}

    return json.loads(text) or {}


@dataclass(frozen=True)
class EngineSettings:
    """Tunable parameters of allocation and consolidation matching."""

    # Proximity detection
    detect_geofence_km: float = 5.0
    hub_radius_km: float = 5.0
    default_co2_per_km: float = 0.5

    # Opportunity timing
    opportunity_expiry_minutes: int = 60
    meet_offset_minutes: int = 30
    acceptance_window_minutes: int = 30

    # Advisory synergy search
    synergy_geofence_km: float = 10.0

    # Backhaul marketplace search
    backhaul_radius_km: float = 20.0

    # Manifest validity: one day per this many km, minimum one day
    km_per_validity_day: float = 200.0

    # Allocation route placeholder duration
    route_estimated_duration_minutes: int = 60

    # Compare-and-swap attempts before an acceptance gives up
    accept_max_attempts: int = 3

    @classmethod
    def from_config(cls, config: Optional[dict] = None) -> "EngineSettings":
        """Build settings from the `engine` section, ignoring unknown keys."""
        cfg = config if config is not None else load_engine_config()
        section = cfg.get("engine", {}) if isinstance(cfg, dict) else {}

        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in (section or {}).items():
            if key not in known:
                logger.warning(f"Ignoring unknown engine setting: {key}")
                continue
            values[key] = value

        return cls(**values)


_settings: Optional[EngineSettings] = None


def get_settings() -> EngineSettings:
    """Get the process-wide engine settings."""
    global _settings
    if _settings is None:
        _settings = EngineSettings.from_config()
    return _settings
