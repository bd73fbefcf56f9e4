"""Configuration settings for the consultation core."""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import Tier

DEFAULT_DURATION_SECONDS = 24 * 60 * 60

_DURATION_RE = re.compile(r"^\s*(?P<value>\d+(?:\.\d+)?)\s*(?P<unit>[smhd])\s*$", re.IGNORECASE)
_DURATION_UNITS = {"s": 1, "m": 60, "h": 60 * 60, "d": 24 * 60 * 60}


def parse_duration(value: str) -> float:
    """Parse a duration such as ``30m`` or ``24h`` into seconds.

    Unparseable strings fall back to 24 hours.
    """
    match = _DURATION_RE.match(value or "")
    if not match:
        return float(DEFAULT_DURATION_SECONDS)
    return float(match.group("value")) * _DURATION_UNITS[match.group("unit").lower()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Tier thresholds (upper bound of the overall score for each tier)
    direct_threshold: float = Field(3.0, ge=1, le=10)
    tier1_threshold: float = Field(6.0, ge=1, le=10)
    tier2_threshold: float = Field(8.0, ge=1, le=10)

    # Cache
    cache_ttl: str = "24h"
    cache_max_entries: int = Field(1000, ge=1)
    cache_hit_policy: Literal["trust", "revalidate"] = "trust"

    # Pattern library
    pattern_limit: int = Field(500, ge=1)
    similarity_threshold: float = Field(0.7, ge=0, le=1)

    # Learning
    learning_enabled: bool = True
    learning_log_limit: int = 500
    threshold_step: float = 0.1
    threshold_min_samples: int = 5
    tier_accuracy_floor: float = 0.7
    tier_accuracy_ceiling: float = 0.95

    # Analytics & metrics
    analytics_event_limit: int = 10000
    metrics_history_limit: int = 1000
    metrics_trim_to: int = 500
    status_window: int = 100

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="CONSULT_", env_file=".env", extra="ignore")

    @property
    def cache_ttl_seconds(self) -> float:
        """Base cache lifetime in seconds."""
        return parse_duration(self.cache_ttl)


@dataclass
class TierThresholds:
    """Mutable tier cut-offs shared by the analyzer and the recovery system."""

    direct: float = 3.0
    tier1: float = 6.0
    tier2: float = 8.0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @classmethod
    def from_settings(cls, settings: Settings) -> TierThresholds:
        return cls(
            direct=settings.direct_threshold,
            tier1=settings.tier1_threshold,
            tier2=settings.tier2_threshold,
        )

    def tier_for(self, score: float) -> Tier:
        with self._lock:
            if score <= self.direct:
                return Tier.DIRECT
            if score <= self.tier1:
                return Tier.TIER_1
            if score <= self.tier2:
                return Tier.TIER_2
            return Tier.TIER_3

    def snapshot(self) -> dict[str, float]:
        with self._lock:
            return {
                "direct": round(self.direct, 2),
                "tier1": round(self.tier1, 2),
                "tier2": round(self.tier2, 2),
                "tier3": 10.0,
            }

    def adjust(self, deltas: dict[str, float]) -> dict[str, float]:
        """Apply deltas while keeping the cut-offs ordered inside [1, 10]."""
        with self._lock:
            direct = min(max(1.0, self.direct + deltas.get("direct", 0.0)), 8.0)
            tier1 = min(max(direct + 1.0, self.tier1 + deltas.get("tier1", 0.0)), 9.0)
            tier2 = min(max(tier1 + 1.0, self.tier2 + deltas.get("tier2", 0.0)), 10.0)
            self.direct, self.tier1, self.tier2 = direct, tier1, tier2
        return self.snapshot()


# Global settings instance
settings = Settings()
