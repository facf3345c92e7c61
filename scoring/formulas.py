"""
Human-readable scoring formulas, derived from the rule tables.

Every band of a StepRule becomes one threshold row, so the explanation can
never drift from the scores the engine actually assigns.
"""
from typing import Optional

from common.models import FormulaExplanation, FormulaThreshold, Signal
from scoring.engine import classify_status
from scoring.rules import BaseRule, BooleanRule, StepRule
from scoring.signals import SIGNALS, SIGNALS_BY_KEY, SignalDefinition


def _fmt(bound: float, unit: str) -> str:
    return f"{bound:g}{unit}"


def _label(score: int) -> str:
    return classify_status(score).value.replace("_", " ").capitalize()


def _step_thresholds(rule: StepRule, unit: str) -> list[FormulaThreshold]:
    rows = []
    previous: Optional[float] = None
    for bound, points in rule.bands:
        if previous is None:
            text = f"{'≥' if rule.at_least else '≤'} {_fmt(bound, unit)}"
        elif rule.at_least:
            text = f"{_fmt(bound, unit)} to {_fmt(previous, unit)}"
        else:
            text = f"{_fmt(previous, unit)} to {_fmt(bound, unit)}"
        rows.append(FormulaThreshold(range=text, label=_label(points), score=points))
        previous = bound
    last = rule.bands[-1][0]
    floor_text = f"{'<' if rule.at_least else '>'} {_fmt(last, unit)}"
    rows.append(FormulaThreshold(range=floor_text, label=_label(rule.floor), score=rule.floor))
    return rows


def thresholds(rule: BaseRule, unit: str = "") -> list[FormulaThreshold]:
    if isinstance(rule, StepRule):
        return _step_thresholds(rule, unit)
    if isinstance(rule, BooleanRule):
        return [
            FormulaThreshold(range=rule.true_label, label=_label(rule.true_score), score=rule.true_score),
            FormulaThreshold(range=rule.false_label, label=_label(rule.false_score), score=rule.false_score),
        ]
    raise TypeError(f"no threshold table for {type(rule).__name__}")


def explain(definition: SignalDefinition) -> FormulaExplanation:
    lo, hi = definition.rule.bounds
    return FormulaExplanation(
        key=definition.key,
        name=definition.name,
        pillar=definition.pillar,
        formula=definition.formula,
        bounds=f"{lo} ≤ score ≤ {hi}",
        thresholds=thresholds(definition.rule, definition.unit),
        rationale=definition.rationale,
    )


def all_formulas() -> dict[str, FormulaExplanation]:
    return {s.key: explain(s) for s in SIGNALS}


def get_formula(key: str) -> Optional[FormulaExplanation]:
    definition = SIGNALS_BY_KEY.get(key)
    return explain(definition) if definition is not None else None


def describe_signal(signal: Signal) -> str:
    """Plain-text breakdown of one scored signal."""
    f = get_formula(signal.key)
    if f is None:
        return "Formula not available"
    lines = [
        f.name,
        "",
        f"Raw Value: {signal.display_value}" + (" (fallback)" if signal.is_fallback else ""),
        f"Formula: {f.formula}",
        f"Bounded: {f.bounds}",
        "",
        f"Current Score: {signal.score} pts",
        "",
        "Thresholds:",
    ]
    lines += [f"• {t.range} = {t.label} ({t.score} pts)" for t in f.thresholds]
    lines += ["", f.rationale]
    return "\n".join(lines)
