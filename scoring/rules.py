"""Per-signal scoring rules: raw value -> integer score."""
from abc import ABC, abstractmethod
from typing import Sequence


class BaseRule(ABC):
    @abstractmethod
    def score(self, value) -> int:
        pass

    @property
    @abstractmethod
    def bounds(self) -> tuple[int, int]:
        """Closed range every score of this rule lies in."""

    @abstractmethod
    def accepts(self, value) -> bool:
        """Whether ``value`` is a usable input for this rule."""


class StepRule(BaseRule):
    """Ordered step function.

    at_least=True:  first band with value >= bound wins (bands in descending bound order)
    at_least=False: first band with value <= bound wins (bands in ascending bound order)
    Nothing matched -> floor.
    """

    def __init__(self, bands: Sequence[tuple[float, int]], floor: int, at_least: bool = True,
                 allow_inf: bool = False):
        bounds = [b for b, _ in bands]
        expected = sorted(bounds, reverse=at_least)
        if bounds != expected:
            raise ValueError("bands must be ordered from the best bound outward")
        self.bands = list(bands)
        self.floor = floor
        self.at_least = at_least
        self.allow_inf = allow_inf

    def accepts(self, value) -> bool:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if value != value:  # NaN
            return False
        if value in (float("inf"), float("-inf")):
            return self.allow_inf and value > 0
        return True

    def score(self, value) -> int:
        for bound, points in self.bands:
            if (value >= bound) if self.at_least else (value <= bound):
                return points
        return self.floor

    @property
    def bounds(self) -> tuple[int, int]:
        scores = [p for _, p in self.bands] + [self.floor]
        return min(scores), max(scores)


class BooleanRule(BaseRule):
    """Two-value table for regime flags."""

    def __init__(self, true_score: int, false_score: int, true_label: str = "true", false_label: str = "false"):
        self.true_score = true_score
        self.false_score = false_score
        self.true_label = true_label
        self.false_label = false_label

    def accepts(self, value) -> bool:
        return isinstance(value, bool)

    def score(self, value) -> int:
        return self.true_score if value else self.false_score

    @property
    def bounds(self) -> tuple[int, int]:
        return min(self.true_score, self.false_score), max(self.true_score, self.false_score)


# ── Rule table ───────────────────────────────────────────────────────────────

PRICE_VS_MA = StepRule([(10, 100), (5, 85), (2, 70), (0, 55), (-2, 45), (-5, 30), (-10, 15)], floor=0)
ADVANCE_DECLINE = StepRule([(0.75, 100), (0.65, 80), (0.55, 60), (0.45, 40), (0.35, 20)], floor=0)
PCT_ABOVE_200MA = StepRule([(80, 100), (70, 85), (60, 70), (50, 50), (40, 35), (30, 20)], floor=0)
NEW_HIGHS_LOWS = StepRule([(5, 100), (3, 80), (1.5, 65), (1, 50), (0.5, 35), (0.2, 20)], floor=0,
                          allow_inf=True)
VIX = StepRule([(12, 100), (15, 85), (18, 70), (22, 55), (28, 35), (35, 20)], floor=0, at_least=False)
PUT_CALL = StepRule([(1.3, 90), (1.1, 75), (0.9, 60), (0.7, 50), (0.6, 40), (0.5, 25)], floor=10)
TERM_STRUCTURE = BooleanRule(true_score=70, false_score=30, true_label="Contango", false_label="Backwardation")
YIELD_CURVE = StepRule([(1, 100), (0.5, 85), (0.25, 70), (0, 55), (-0.25, 35), (-0.5, 20)], floor=0)
HY_SPREAD = StepRule([(2.5, 100), (3.5, 80), (4.5, 60), (5.5, 45), (7, 30), (9, 15)], floor=0, at_least=False)
IG_SPREAD = StepRule([(0.8, 100), (1, 80), (1.3, 60), (1.6, 45), (2, 30)], floor=10, at_least=False)
# contrarian: crowded bulls score low, crowded bears score high
AAII_BULLS = StepRule([(20, 95), (30, 75), (40, 55), (50, 40), (60, 25)], floor=10, at_least=False)
AAII_BEARS = StepRule([(50, 95), (40, 75), (30, 55), (25, 45), (20, 30)], floor=15)
FEAR_GREED = StepRule([(10, 95), (25, 80), (40, 60), (60, 50), (75, 35), (90, 20)], floor=5, at_least=False)
GLOBAL_PMI = StepRule([(57, 100), (54, 80), (51, 65), (50, 50), (48, 35), (45, 20)], floor=0)
VSTOXX = StepRule([(12, 100), (15, 85), (18, 70), (22, 55), (28, 35)], floor=15, at_least=False)
