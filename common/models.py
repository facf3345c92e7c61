"""Core Pydantic models for the market compass."""
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, StrictBool

RawValue = Union[StrictBool, float]


class HealthStatus(str, Enum):
    VERY_HEALTHY = "very_healthy"
    HEALTHY = "healthy"
    NEUTRAL = "neutral"
    UNHEALTHY = "unhealthy"
    VERY_UNHEALTHY = "very_unhealthy"


class AgreementLabel(str, Enum):
    STRONG_BULLISH = "strong_bullish"
    LEANING_POSITIVE = "leaning_positive"
    STRONG_BEARISH = "strong_bearish"
    LEANING_NEGATIVE = "leaning_negative"
    MIXED = "mixed"


class RawSignalValue(BaseModel):
    """One unit-normalised reading produced by a provider adapter."""
    model_config = ConfigDict(frozen=True)

    key: str
    value: RawValue
    delta: Optional[float] = None


class Signal(BaseModel):
    key: str
    name: str
    ticker: str
    raw_value: RawValue
    display_value: str
    delta: Optional[float] = None
    score: int
    threshold: str
    is_fallback: bool = False


class Pillar(BaseModel):
    key: str
    weight: float
    signals: list[Signal]
    score: int


class PillarAgreement(BaseModel):
    bullish: list[tuple[str, int]] = []
    neutral: list[tuple[str, int]] = []
    bearish: list[tuple[str, int]] = []
    label: AgreementLabel
    interpretation: str


class CompositeResult(BaseModel):
    score: int
    status: HealthStatus
    pillars: dict[str, Pillar]
    missing_signals: list[str] = []
    is_incomplete: bool = False
    agreement: PillarAgreement
    computed_at: datetime
    cycle_id: str = ""

    @property
    def pillar_scores(self) -> dict[str, int]:
        return {key: p.score for key, p in self.pillars.items()}


class ScoreEntry(BaseModel):
    date: str  # YYYY-MM-DD, exchange-local
    composite: int
    pillars: dict[str, int] = {}


class CacheEntry(BaseModel):
    data: Any
    timestamp: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl


class RateLimiterStatus(BaseModel):
    provider: str
    calls_in_window: int
    max_calls: int
    queue_length: int
    utilization_percent: float
    window_start: Optional[float] = None


class InstrumentQuote(BaseModel):
    ticker: str
    current_price: float
    change_percent: float


class HealthComponents(BaseModel):
    market_direction: int
    risk_appetite: int
    volatility: int


class HealthScoreResult(BaseModel):
    score: int
    status: HealthStatus
    description: str
    components: HealthComponents


class DataStatus(BaseModel):
    is_complete: bool
    missing_signals: list[str] = []
    last_updated: Optional[datetime] = None
    stale_seconds: Optional[float] = None


class FormulaThreshold(BaseModel):
    range: str
    label: str
    score: int


class FormulaExplanation(BaseModel):
    key: str
    name: str
    pillar: str
    formula: str
    bounds: str
    thresholds: list[FormulaThreshold]
    rationale: str
