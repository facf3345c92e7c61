"""
Market Compass scoring engine.

Reduces one raw-signal snapshot to signals, six pillars and the composite.

Weights:
  Direction   25% - SPY / QQQ / IWM vs their 200-day average
  Breadth     20% - participation across NYSE
  Volatility  15% - VIX level, put/call, term structure
  Credit      15% - yield curve and corporate spreads
  Sentiment   10% - contrarian survey / Fear & Greed readings
  Global      15% - world equities, European vol, PMI

Pillar    = round_half_up(mean of its 3 signal scores)
Composite = round_half_up(sum(pillar score * weight))
Decimal arithmetic keeps both order-invariant.
"""
import math
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional

from common.errors import ConfigurationError
from common.logger import get_logger
from common.models import CompositeResult, HealthStatus, Pillar, RawSignalValue, RawValue, Signal
from config.settings import INCOMPLETE_THRESHOLD, PILLAR_WEIGHTS
from scoring.agreement import classify_agreement
from scoring.signals import PILLARS, SIGNAL_FALLBACKS, SIGNALS, SignalDefinition

logger = get_logger("engine")

SIGNALS_PER_PILLAR = 3


def round_half_up(value) -> int:
    return int(Decimal(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def classify_status(score: float) -> HealthStatus:
    if score >= 75: return HealthStatus.VERY_HEALTHY
    if score >= 60: return HealthStatus.HEALTHY
    if score >= 40: return HealthStatus.NEUTRAL
    if score >= 25: return HealthStatus.UNHEALTHY
    return HealthStatus.VERY_UNHEALTHY


def pillar_score(scores: list[int]) -> int:
    return round_half_up(Decimal(sum(scores)) / Decimal(len(scores)))


def composite_score(pillar_scores: Mapping[str, int], weights: Mapping[str, float]) -> int:
    total = sum(Decimal(str(weights[k])) * Decimal(int(s)) for k, s in pillar_scores.items())
    return round_half_up(total)


class ScoringEngine:
    def __init__(
        self,
        weights: Mapping[str, float] = PILLAR_WEIGHTS,
        signals: list[SignalDefinition] = SIGNALS,
        fallbacks: Mapping[str, RawValue] = SIGNAL_FALLBACKS,
        incomplete_threshold: int = INCOMPLETE_THRESHOLD,
    ):
        self.weights = dict(weights)
        self.signals = list(signals)
        self.fallbacks = dict(fallbacks)
        self.incomplete_threshold = incomplete_threshold
        self._validate()

    def _validate(self) -> None:
        if set(self.weights) != set(PILLARS):
            raise ConfigurationError(f"pillar weights must cover exactly {PILLARS}, got {sorted(self.weights)}")
        for key, w in self.weights.items():
            if not 0 < w < 1:
                raise ConfigurationError(f"weight for {key} must lie in (0, 1), got {w}")
        total = sum(Decimal(str(w)) for w in self.weights.values())
        if total != 1:
            raise ConfigurationError(f"pillar weights must sum to 1.0, got {total}")
        for pillar in PILLARS:
            count = sum(1 for s in self.signals if s.pillar == pillar)
            if count != SIGNALS_PER_PILLAR:
                raise ConfigurationError(f"pillar {pillar} has {count} signals, expected {SIGNALS_PER_PILLAR}")
        missing = [s.key for s in self.signals if s.key not in self.fallbacks]
        if missing:
            raise ConfigurationError(f"no fallback for signals: {missing}")
        for s in self.signals:
            if not s.rule.accepts(self.fallbacks[s.key]):
                raise ConfigurationError(f"fallback for {s.key} is not a valid input for its rule")

    def score_signal(self, definition: SignalDefinition, raw: Optional[RawSignalValue]) -> Signal:
        value = raw.value if raw is not None else None
        delta = raw.delta if raw is not None else None
        is_fallback = value is None or not definition.rule.accepts(value)
        if is_fallback:
            value = self.fallbacks[definition.key]
            delta = None
        if delta is not None and not math.isfinite(delta):
            delta = None
        return Signal(
            key=definition.key,
            name=definition.name,
            ticker=definition.ticker,
            raw_value=value,
            display_value=definition.display(value),
            delta=delta,
            score=definition.rule.score(value),
            threshold=definition.threshold,
            is_fallback=is_fallback,
        )

    def compute(
        self,
        snapshot: Mapping[str, RawSignalValue],
        cycle_id: str = "",
        now: Optional[datetime] = None,
    ) -> CompositeResult:
        pillars: dict[str, Pillar] = {}
        missing: list[str] = []
        for pillar in PILLARS:
            signals = []
            for definition in self.signals:
                if definition.pillar != pillar:
                    continue
                signal = self.score_signal(definition, snapshot.get(definition.key))
                if signal.is_fallback:
                    missing.append(definition.key)
                signals.append(signal)
            pillars[pillar] = Pillar(
                key=pillar,
                weight=self.weights[pillar],
                signals=signals,
                score=pillar_score([s.score for s in signals]),
            )

        scores = {k: p.score for k, p in pillars.items()}
        score = composite_score(scores, self.weights)
        incomplete = len(missing) > self.incomplete_threshold
        if missing:
            logger.warning(f"{len(missing)} signals on fallback values: {', '.join(missing)}")
        logger.info(f"Pillars: {', '.join(f'{k}={v}' for k, v in scores.items())}")
        logger.info(f"COMPOSITE = {score} → {classify_status(score).value}"
                    + (" (incomplete)" if incomplete else ""))

        return CompositeResult(
            score=score,
            status=classify_status(score),
            pillars=pillars,
            missing_signals=missing,
            is_incomplete=incomplete,
            agreement=classify_agreement(scores),
            computed_at=now or datetime.now(timezone.utc),
            cycle_id=cycle_id,
        )
