"""
Typed data models for the make/model regularization pipeline.
All data structures used throughout the codebase should be defined here.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional, Tuple


@dataclass(frozen=True)
class YearRange:
    """Inclusive [start, end] range of years."""
    start: int
    end: int

    def overlaps(self, other: "YearRange") -> bool:
        return not (self.end < other.start or other.end < self.start)

    def gap_after(self, other: "YearRange") -> int:
        """Years between the end of `other` and the start of this range (<= 0 if they touch)."""
        return self.start - other.end

    def __str__(self) -> str:
        if self.start == self.end:
            return str(self.start)
        return f"{self.start}-{self.end}"


def format_year_range(years: Optional[YearRange]) -> str:
    return str(years) if years else "years unknown"


@dataclass(frozen=True, eq=False)
class IdentifierPair:
    """
    A (make, model) pair seen in the dataset.

    Identity is (primary, secondary) only; the year ranges and categories are
    descriptive metadata and never take part in equality or hashing.
    """
    primary: str  # make, case-insensitive
    secondary: str  # model
    model_year_range: Optional[YearRange] = None
    period_range: Optional[YearRange] = None  # registration years
    categories: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.primary.upper(), self.secondary)

    @property
    def sort_key(self) -> Tuple[str, str]:
        return self.key

    @property
    def label(self) -> str:
        return f"{self.primary} {self.secondary}"

    def __eq__(self, other) -> bool:
        if not isinstance(other, IdentifierPair):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)


@dataclass(frozen=True)
class Candidate:
    """A reference pair proposed for one noisy pair."""
    reference: IdentifierPair
    score: float
    vetoed: bool = False  # rejected by the numeric-divergence veto
    normalized: bool = False  # "MAKE MODEL" labels differ only by the separator

    @property
    def rank_key(self) -> Tuple[float, Tuple[str, str]]:
        # Descending score, then lexical order of the reference pair
        return (-self.score, self.reference.sort_key)


class VehicleType(str, Enum):
    PASSENGER = "PAU/CAU"
    MOTORCYCLE = "MOTORCYCLE"
    SPECIALIZED = "SPECIALIZED"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class TypeInference:
    """Vehicle type inferred for a noisy pair, with the evidence it came from."""
    vehicle_type: VehicleType
    confidence: float
    rationale: str

    def __str__(self) -> str:
        return f"{self.vehicle_type.value} ({self.confidence:.2f})"


class VerdictLabel(str, Enum):
    SUPPORT = "SUPPORT"
    PREVENT = "PREVENT"
    NEUTRAL = "NEUTRAL"


class Classification(str, Enum):
    SPELLING_VARIANT = "spelling-variant"
    TRUNCATION_VARIANT = "truncation-variant"
    NEW_MODEL = "new-model"
    UNCERTAIN = "uncertain"

    @property
    def verdict_label(self) -> VerdictLabel:
        if self in (Classification.SPELLING_VARIANT, Classification.TRUNCATION_VARIANT):
            return VerdictLabel.SUPPORT
        if self is Classification.NEW_MODEL:
            return VerdictLabel.PREVENT
        return VerdictLabel.NEUTRAL


@dataclass(frozen=True)
class Verdict:
    """Output of a validator or of the semantic classifier."""
    label: VerdictLabel
    confidence: float
    rationale: str
    source: str  # "reference", "temporal" or "classifier"
    classification: Optional[Classification] = None  # classifier only
    recommends_regularize: Optional[bool] = None  # classifier's yes/no, if it gave one

    def __post_init__(self):
        object.__setattr__(self, "confidence", max(0.0, min(float(self.confidence), 1.0)))

    def is_prevent(self, min_confidence: float) -> bool:
        return self.label is VerdictLabel.PREVENT and self.confidence >= min_confidence


class DecisionPath(str, Enum):
    NO_CANDIDATE = "no-candidate"
    NUMERIC_VETO = "numeric-veto"
    NORMALIZATION = "normalization"
    VALIDATED = "validated"
    TYPE_ONLY = "type-only"  # non-passenger type, classified but not matched
    FAILED = "failed"


@dataclass(frozen=True)
class Decision:
    """Final, write-once outcome for one noisy pair."""
    pair: IdentifierPair
    candidate: Optional[Candidate]
    should_regularize: bool
    rationale: str
    path: DecisionPath
    verdicts: Tuple[Verdict, ...] = ()
    inferred: Optional[TypeInference] = None

    def __post_init__(self):
        if self.should_regularize and self.candidate is None:
            raise ValueError(f"Decision for '{self.pair.label}' regularizes without a candidate")

    @property
    def similarity(self) -> float:
        return self.candidate.score if self.candidate else 0.0

    def verdict_from(self, source: str) -> Optional[Verdict]:
        for verdict in self.verdicts:
            if verdict.source == source:
                return verdict
        return None
