"""Pillar agreement: how many pillars lean bullish vs bearish."""
from typing import Mapping

from common.models import AgreementLabel, PillarAgreement

BULLISH_MIN = 60
BEARISH_BELOW = 45

INTERPRETATIONS = {
    AgreementLabel.STRONG_BULLISH: "Strong bullish signals across most pillars indicate favorable "
                                   "market conditions for risk assets.",
    AgreementLabel.LEANING_POSITIVE: "Leaning positive with constructive market backdrop. "
                                     "Majority of pillars show strength.",
    AgreementLabel.STRONG_BEARISH: "Strong defensive signals suggest caution warranted. "
                                   "Most pillars showing stress.",
    AgreementLabel.LEANING_NEGATIVE: "Leaning negative with stressed market conditions. "
                                     "Majority of pillars showing weakness.",
    AgreementLabel.MIXED: "Mixed signals indicate neutral market conditions with no clear directional bias.",
}


def classify_agreement(pillar_scores: Mapping[str, int]) -> PillarAgreement:
    bullish = [(k, s) for k, s in pillar_scores.items() if s >= BULLISH_MIN]
    neutral = [(k, s) for k, s in pillar_scores.items() if BEARISH_BELOW <= s < BULLISH_MIN]
    bearish = [(k, s) for k, s in pillar_scores.items() if s < BEARISH_BELOW]

    if len(bullish) >= 5:
        label = AgreementLabel.STRONG_BULLISH
    elif len(bullish) >= 4:
        label = AgreementLabel.LEANING_POSITIVE
    elif len(bearish) >= 5:
        label = AgreementLabel.STRONG_BEARISH
    elif len(bearish) >= 4:
        label = AgreementLabel.LEANING_NEGATIVE
    else:
        label = AgreementLabel.MIXED

    return PillarAgreement(
        bullish=bullish,
        neutral=neutral,
        bearish=bearish,
        label=label,
        interpretation=INTERPRETATIONS[label],
    )
