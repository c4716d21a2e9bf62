from typing import Optional

from regularizer.config import TEMPORAL_FIELD, TEMPORAL_GRACE_YEARS
from regularizer.models import IdentifierPair, Verdict, VerdictLabel, YearRange

SOURCE = "temporal"
FIELDS = ("registration", "model_year")


class TemporalValidator:
    """
    Checks that a noisy pair and its candidate were observed in compatible years.

    Args:
        grace_years (int): Largest gap (in years) after the candidate's last year
                           that is still treated as ambiguous rather than a new model.
        field (str): "registration" compares registration periods,
                     "model_year" compares model-year ranges.
    """

    def __init__(self, grace_years: int = TEMPORAL_GRACE_YEARS, field: str = TEMPORAL_FIELD):
        if field not in FIELDS:
            raise ValueError(f"Unknown temporal field {field!r}; expected one of {FIELDS}")
        self.grace_years = grace_years
        self.field = field

    def _years(self, pair: IdentifierPair) -> Optional[YearRange]:
        if self.field == "model_year":
            return pair.model_year_range
        return pair.period_range

    def validate(self, noisy: IdentifierPair, candidate: IdentifierPair) -> Verdict:
        noisy_years = self._years(noisy)
        candidate_years = self._years(candidate)
        if noisy_years is None or candidate_years is None:
            return Verdict(VerdictLabel.NEUTRAL, 0.0, "Year range data unavailable", SOURCE)

        span = f"{noisy_years} vs {candidate_years}"
        if noisy_years.overlaps(candidate_years):
            return Verdict(VerdictLabel.SUPPORT, 0.9, f"Years overlap ({span})", SOURCE)

        gap = noisy_years.gap_after(candidate_years)
        if 0 < gap <= self.grace_years:
            return Verdict(
                VerdictLabel.NEUTRAL,
                0.7,
                f"Noisy pair starts {gap} year(s) after candidate ended ({span}) - spelling drift or model refresh",
                SOURCE,
            )
        if gap > self.grace_years:
            return Verdict(
                VerdictLabel.PREVENT,
                0.8,
                f"Large gap: noisy pair starts {noisy_years.start}, candidate ended {candidate_years.end} - likely new model",
                SOURCE,
            )
        return Verdict(VerdictLabel.PREVENT, 0.75, f"No overlap: noisy pair predates candidate ({span})", SOURCE)
