"""
Candidate selection.

For each noisy pair, score the reference pairs under similar makes and keep
the ones above the similarity floor. Only the best candidate goes on to
validation.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from loguru import logger

from regularizer.config import ResolverSettings
from regularizer.models import Candidate, IdentifierPair, VehicleType
from regularizer.reference_index import ReferenceSet
from regularizer.similarity import normalization_boost, numeric_divergence, similarity
from regularizer.vehicle_types import category_group


@dataclass(frozen=True)
class Selection:
    """Outcome of candidate selection for one noisy pair."""
    pair: IdentifierPair
    candidates: Tuple[Candidate, ...] = ()
    vetoed: Optional[Candidate] = None  # best candidate rejected by the numeric veto

    @property
    def best(self) -> Optional[Candidate]:
        return self.candidates[0] if self.candidates else None


class CandidateSelector:
    """
    Ranks reference pairs for noisy pairs against one ReferenceSet snapshot.

    The make lookup is memoised on the instance; build a new selector when the
    reference set or the settings change.
    """

    def __init__(self, reference: ReferenceSet, settings: Optional[ResolverSettings] = None):
        self.reference = reference
        self.settings = settings or ResolverSettings()
        self._aliases = {k.upper(): v.upper() for k, v in self.settings.make_aliases.items()}
        self._primary_matches: Dict[str, Tuple[str, ...]] = {}

    def resolve_primary(self, primary: str) -> str:
        """Apply the known-variant alias map to a make."""
        upper = primary.upper()
        return self._aliases.get(upper, upper)

    def matching_primaries(self, primary: str) -> Tuple[str, ...]:
        """Reference makes close enough to `primary` to search under."""
        upper = primary.upper()
        if upper not in self._primary_matches:
            self._primary_matches[upper] = self._compute_primary_matches(upper)
        return self._primary_matches[upper]

    def _compute_primary_matches(self, upper: str) -> Tuple[str, ...]:
        s = self.settings
        resolved = self.resolve_primary(upper)
        scored = []
        for ref_primary in self.reference.primaries():
            if ref_primary == resolved:
                score = 1.0
            else:
                score = similarity(upper, ref_primary, separator=s.separator, boost=s.normalization_boost)
            if score >= s.primary_threshold:
                scored.append((-score, ref_primary))
        scored.sort()
        if s.two_pass:
            scored = scored[:1]
        return tuple(ref_primary for _, ref_primary in scored)

    def _score(self, noisy: IdentifierPair, reference: IdentifierPair) -> Candidate:
        s = self.settings
        vetoed = s.numeric_threshold is not None and numeric_divergence(
            noisy.secondary, reference.secondary, s.numeric_threshold
        )
        normalized = normalization_boost(
            noisy.label, reference.label, separator=s.separator, boost=s.normalization_boost
        ) is not None

        boosted = None
        if self.resolve_primary(noisy.primary) == reference.primary.upper():
            boosted = normalization_boost(
                noisy.secondary, reference.secondary, separator=s.separator, boost=s.normalization_boost
            )
        if boosted is not None:
            score = boosted
        elif s.two_pass:
            score = similarity(noisy.secondary, reference.secondary, separator=s.separator, boost=s.normalization_boost)
        else:
            score = similarity(noisy.label, reference.label, separator=s.separator, boost=s.normalization_boost)
        return Candidate(reference=reference, score=score, vetoed=vetoed, normalized=normalized)

    def _eligible(
        self, noisy: IdentifierPair, reference: IdentifierPair, vehicle_type: Optional[VehicleType]
    ) -> bool:
        if vehicle_type is not None and category_group(reference.categories) is not vehicle_type:
            return False
        if self.settings.category_filter and noisy.categories:
            return bool(noisy.categories & reference.categories)
        return True

    def _above_floor(self, score: float, vehicle_type: Optional[VehicleType]) -> bool:
        s = self.settings
        if vehicle_type is None:
            return score > s.similarity_floor
        if vehicle_type is VehicleType.PASSENGER:
            return score >= s.passenger_threshold
        return score >= s.other_threshold

    def matches_type(self, vehicle_type: VehicleType) -> bool:
        """Whether pairs of an inferred type are matched at all."""
        if vehicle_type is VehicleType.PASSENGER:
            return True
        return self.settings.match_other_types and vehicle_type is not VehicleType.UNKNOWN

    def candidates(self, noisy: IdentifierPair, vehicle_type: Optional[VehicleType] = None) -> List[Candidate]:
        """
        All scored candidates above the floor, vetoed ones included, best first.

        With a `vehicle_type`, only reference pairs of that type are scored and
        the per-type threshold replaces the similarity floor.
        """
        scored = []
        for ref_primary in self.matching_primaries(noisy.primary):
            for reference in self.reference.pairs_for(ref_primary):
                if not self._eligible(noisy, reference, vehicle_type):
                    continue
                candidate = self._score(noisy, reference)
                if self._above_floor(candidate.score, vehicle_type):
                    scored.append(candidate)
        scored.sort(key=lambda c: c.rank_key)
        return scored

    def select(self, noisy: IdentifierPair, vehicle_type: Optional[VehicleType] = None) -> Selection:
        """
        Select candidates for a noisy pair.

        The numeric veto applies to the top-ranked candidate only: when it is
        vetoed the pair gets no candidate at all.

        Args:
            noisy (IdentifierPair): Pair from the evaluation period.
            vehicle_type (Optional[VehicleType]): Inferred type restricting the search.

        Returns:
            Selection: Ranked candidates (best first), or the vetoed top candidate.
        """
        ranked = self.candidates(noisy, vehicle_type)
        if ranked and ranked[0].vetoed:
            logger.debug(f"🔢 {noisy.label} → {ranked[0].reference.label} rejected by numeric veto")
            return Selection(pair=noisy, vetoed=ranked[0])
        surviving = tuple(c for c in ranked if not c.vetoed)
        if surviving:
            logger.debug(
                f"🔎 {noisy.label} → {surviving[0].reference.label} (similarity: {surviving[0].score:.2f})"
            )
        return Selection(pair=noisy, candidates=surviving)
