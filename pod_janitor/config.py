"""
Pydantic-based configuration system for pod-janitor.

Loads configuration from YAML files, merged over ``default.yaml`` in the
same directory.
Usage:
    from pod_janitor.config import load_config
    config = load_config("config/production.yaml")
"""

import re
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict

import yaml
from pydantic import BaseModel, Field, field_validator

# ── Durations ───────────────────────────────────────────────────────────────

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: str) -> timedelta:
    """Parse a Go-style duration string such as ``1h30m`` or ``-5m``.

    A bare ``0`` is accepted without a unit.

    Raises:
        ValueError: If the string is not a valid duration.
    """
    text = value.strip()
    sign = 1.0
    if text[:1] in ("+", "-"):
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f"invalid duration {value!r}")

    seconds = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return timedelta(seconds=sign * seconds)


# ── Sub-configs ─────────────────────────────────────────────────────────────


class JanitorConfig(BaseModel):
    """What to clean up and after how long."""

    namespace: str = "default"
    delete_successful_after: timedelta = Field(
        default=timedelta(0), description="Retention for Succeeded pods (0 = never delete)"
    )
    delete_failed_after: timedelta = Field(
        default=timedelta(0), description="Retention for Failed pods (0 = never delete)"
    )

    @field_validator("delete_successful_after", "delete_failed_after", mode="before")
    @classmethod
    def _parse_go_duration(cls, value: Any) -> Any:
        # Anything else (ISO 8601, "HH:MM:SS", seconds) is left to pydantic
        if isinstance(value, str):
            try:
                return parse_duration(value)
            except ValueError:
                return value
        return value


class KubeConfig(BaseModel):
    """API server connection. Unset fields fall back to in-cluster discovery."""

    api_url: str | None = None
    token_file: str | None = None
    ca_file: str | None = None
    verify_ssl: bool = True


class MetricsConfig(BaseModel):
    """Prometheus Pushgateway settings."""

    pushgateway_url: str = Field(default="", description="Empty disables pushing")
    job: str = "pod-janitor"


class SchedulerConfig(BaseModel):
    """Sweep cadence."""

    interval_seconds: float = Field(default=600, gt=0)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    file: str = "logs/pod_janitor.log"
    rotation: str = "10 MB"
    retention: str = "30 days"


# ── Root Config ─────────────────────────────────────────────────────────────


class AppConfig(BaseModel):
    """Root configuration for pod-janitor."""

    janitor: JanitorConfig = JanitorConfig()
    kube: KubeConfig = KubeConfig()
    metrics: MetricsConfig = MetricsConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    logging: LoggingConfig = LoggingConfig()


# ── Config Loading ──────────────────────────────────────────────────────────


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base dict."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    config_path: str | Path,
    default_path: str | Path | None = None,
) -> AppConfig:
    """Load configuration from YAML, merging with defaults.

    Args:
        config_path: Path to deployment-specific config.
        default_path: Path to default config. Auto-detected if None.

    Returns:
        Fully resolved AppConfig instance.
    """
    config_path = Path(config_path)

    if default_path is None:
        default_path = config_path.parent / "default.yaml"

    base_data: Dict[str, Any] = {}
    if Path(default_path).exists():
        with open(default_path, "r", encoding="utf-8") as f:
            base_data = yaml.safe_load(f) or {}

    override_data: Dict[str, Any] = {}
    if config_path.exists() and config_path.resolve() != Path(default_path).resolve():
        with open(config_path, "r", encoding="utf-8") as f:
            override_data = yaml.safe_load(f) or {}

    merged = _deep_merge(base_data, override_data)

    return AppConfig(**merged)
