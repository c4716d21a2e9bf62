# regularizer/matchers/arbitrator.py

from dataclasses import dataclass
from typing import Optional, Tuple

from regularizer.config import ResolverSettings
from regularizer.models import Classification, Verdict

REGULARIZING_CLASSES = (Classification.SPELLING_VARIANT, Classification.TRUNCATION_VARIANT)


@dataclass(frozen=True)
class Arbitrator:
    """
    Combines validator and classifier verdicts with fixed precedence.

    Rules, first match wins:
    1. Catalog PREVENT at >= reference_override  -> preserve
    2. Temporal PREVENT at >= temporal_override  -> preserve
    3. Separator-only variant (no classifier call) -> regularize
    4. Classifier variant label at >= classifier_min -> regularize, else preserve
    """
    reference_override: float = 0.9
    temporal_override: float = 0.8
    classifier_min: float = 0.7

    @classmethod
    def from_settings(cls, settings: ResolverSettings) -> "Arbitrator":
        return cls(
            reference_override=settings.reference_override_confidence,
            temporal_override=settings.temporal_override_confidence,
            classifier_min=settings.classifier_min_confidence,
        )

    def decide(
        self,
        reference: Verdict,
        temporal: Verdict,
        classifier: Optional[Verdict],
        normalized: bool = False,
    ) -> Tuple[bool, str]:
        """
        Produce the final regularization decision for one candidate.

        Args:
            reference (Verdict): Reference-authority (catalog) verdict.
            temporal (Verdict): Temporal verdict.
            classifier (Optional[Verdict]): Classifier verdict; None when the
                                            classifier was skipped.
            normalized (bool): The candidate differs from the noisy pair only by
                               the separator.

        Returns:
            Tuple[bool, str]: (should_regularize, rationale)
        """
        if reference.is_prevent(self.reference_override):
            return False, f"Catalog override: {reference.rationale}"

        if temporal.is_prevent(self.temporal_override):
            return False, f"Temporal override: {temporal.rationale}"

        if classifier is None:
            if normalized:
                return True, "Separator-only variant of the reference spelling"
            return False, "No classifier verdict available"

        if classifier.classification in REGULARIZING_CLASSES and classifier.confidence >= self.classifier_min:
            return True, f"Classifier: {classifier.classification.value} ({classifier.confidence:.2f}) - {classifier.rationale}"

        label = classifier.classification.value if classifier.classification else classifier.label.value
        return False, f"Classifier: {label} ({classifier.confidence:.2f}) - {classifier.rationale}"
