"""Independent validators that vote on a (noisy, candidate) pair."""
from regularizer.validators.reference_authority import ReferenceAuthorityValidator, judge_catalog_evidence
from regularizer.validators.temporal import TemporalValidator

__all__ = ["ReferenceAuthorityValidator", "TemporalValidator", "judge_catalog_evidence"]
