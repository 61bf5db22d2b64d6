from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional
import os


FLUSH_POLICIES = ("skip", "halt")
STORE_BACKENDS = ("memory", "sqlite")


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ApplicationConfig:
    """Centralized configuration"""

    # Motion model
    tick_interval_ms: int = 10_000
    step_fraction: float = 0.1  # ~10 ticks per leg
    speed_jitter_kmh: float = 5.0  # width of the band around base speed
    position_jitter_deg: float = 0.0001
    min_speed_kmh: float = 5.0
    max_speed_kmh: float = 60.0
    snap_reports_to_nearest_stop: bool = False

    # ETA estimation
    lookahead_stops: int = 3
    fallback_speed_kmh: float = 25.0

    # Staleness sweeps
    liveness_threshold_ms: int = 5 * 60 * 1000
    vehicle_sweep_interval_ms: int = 5 * 60 * 1000
    eta_retention_ms: int = 2 * 60 * 60 * 1000
    eta_sweep_interval_ms: int = 60 * 60 * 1000

    # Offline replay
    offline_flush_policy: str = "skip"
    offline_item_max_age_seconds: int = 24 * 60 * 60
    connectivity_check_interval_seconds: float = 15.0
    connectivity_check_url: Optional[str] = None
    request_timeout_seconds: int = 10

    # Storage
    store_backend: str = "memory"
    db_path: Path = Path("./db/fleet.db")
    in_dir: Path = Path("./in")

    # Runtime
    timezone: str = "Asia/Kolkata"
    http_host: str = "0.0.0.0"
    http_port: int = 59966
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, prefix: str = "FLEET_") -> "ApplicationConfig":
        """Build a config from FLEET_* environment variables, falling back to defaults"""
        overrides = {}
        for f in fields(cls):
            raw = os.getenv(prefix + f.name.upper())
            if raw is None:
                continue
            default = f.default
            if isinstance(default, bool):
                overrides[f.name] = _env_bool(raw)
            elif isinstance(default, int):
                overrides[f.name] = int(raw)
            elif isinstance(default, float):
                overrides[f.name] = float(raw)
            elif isinstance(default, Path):
                overrides[f.name] = Path(raw)
            else:
                overrides[f.name] = raw
        config = cls(**overrides)
        config.validate()
        return config

    def validate(self) -> "ApplicationConfig":
        """Raise ValueError on settings the services cannot run with"""
        if self.tick_interval_ms <= 0:
            raise ValueError(f"tick_interval_ms must be positive, got {self.tick_interval_ms}")
        if not 0 < self.step_fraction <= 1:
            raise ValueError(f"step_fraction must be in (0, 1], got {self.step_fraction}")
        if self.lookahead_stops < 1:
            raise ValueError(f"lookahead_stops must be at least 1, got {self.lookahead_stops}")
        if self.fallback_speed_kmh <= 0:
            raise ValueError("fallback_speed_kmh must be positive")
        if not 0 <= self.min_speed_kmh <= self.max_speed_kmh:
            raise ValueError(
                f"invalid speed range {self.min_speed_kmh}-{self.max_speed_kmh} km/h"
            )
        if self.speed_jitter_kmh < 0 or self.position_jitter_deg < 0:
            raise ValueError("jitter settings must not be negative")
        for name in ("liveness_threshold_ms", "vehicle_sweep_interval_ms",
                     "eta_retention_ms", "eta_sweep_interval_ms"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.offline_flush_policy not in FLUSH_POLICIES:
            raise ValueError(
                f"offline_flush_policy must be one of {FLUSH_POLICIES}, got {self.offline_flush_policy!r}"
            )
        if self.store_backend not in STORE_BACKENDS:
            raise ValueError(
                f"store_backend must be one of {STORE_BACKENDS}, got {self.store_backend!r}"
            )
        return self

    # Seconds-based views used by the schedulers
    @property
    def tick_interval_seconds(self) -> float:
        return self.tick_interval_ms / 1000.0

    @property
    def liveness_threshold_seconds(self) -> float:
        return self.liveness_threshold_ms / 1000.0

    @property
    def vehicle_sweep_interval_seconds(self) -> float:
        return self.vehicle_sweep_interval_ms / 1000.0

    @property
    def eta_retention_seconds(self) -> float:
        return self.eta_retention_ms / 1000.0

    @property
    def eta_sweep_interval_seconds(self) -> float:
        return self.eta_sweep_interval_ms / 1000.0
