"""Runtime settings for PawSense services."""

from __future__ import annotations

import os
from dataclasses import dataclass, field


def _as_bool(value: str | None, *, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _first_env(*names: str) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None


@dataclass(frozen=True)
class Settings:
    app_name: str = field(default_factory=lambda: os.getenv("PAWSENSE_APP_NAME", "pawsense-api"))

    # Emotion and skin classifiers share one inference host.
    inference_base_url: str = field(
        default_factory=lambda: os.getenv("PAWSENSE_INFERENCE_BASE_URL", "http://localhost:8000")
    )
    alert_base_url: str = field(
        default_factory=lambda: _first_env("PAWSENSE_ALERT_BASE_URL", "PAWSENSE_INFERENCE_BASE_URL")
        or "http://localhost:8000"
    )
    report_base_url: str = field(
        default_factory=lambda: _first_env("PAWSENSE_REPORT_BASE_URL", "PAWSENSE_INFERENCE_BASE_URL")
        or "http://localhost:8000"
    )

    request_timeout_sec: float = field(
        default_factory=lambda: float(os.getenv("PAWSENSE_REQUEST_TIMEOUT_SEC", "60"))
    )
    alert_timeout_sec: float = field(
        default_factory=lambda: float(os.getenv("PAWSENSE_ALERT_TIMEOUT_SEC", "10"))
    )

    # Persistence
    s3_bucket: str | None = field(default_factory=lambda: os.getenv("PAWSENSE_S3_BUCKET"))
    s3_region: str = field(default_factory=lambda: os.getenv("PAWSENSE_S3_REGION", "us-east-1"))
    s3_prefix: str = field(default_factory=lambda: os.getenv("PAWSENSE_S3_PREFIX", "pawsense"))
    local_storage_dir: str = field(
        default_factory=lambda: os.getenv("PAWSENSE_LOCAL_STORAGE_DIR", ".pawsense_local_store")
    )

    # Off keeps last-response-wins; on drops responses older than the newest published one.
    discard_stale_results: bool = field(
        default_factory=lambda: _as_bool(os.getenv("PAWSENSE_DISCARD_STALE_RESULTS"), default=False)
    )
    alert_min_confidence: int = field(
        default_factory=lambda: int(os.getenv("PAWSENSE_ALERT_MIN_CONFIDENCE", "60"))
    )


def get_settings() -> Settings:
    return Settings()
