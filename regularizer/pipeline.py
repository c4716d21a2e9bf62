"""
Pipeline orchestration.

Pairs without a usable candidate are decided immediately (fast path). Every
other pair becomes one asyncio task that runs the validators and an isolated
classifier session, then arbitrates. Tasks run behind a semaphore and are
collected as they complete; the final list is sorted so that report order
never depends on completion order.
"""
import asyncio
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from loguru import logger

from regularizer.candidate_selector import CandidateSelector
from regularizer.config import ResolverSettings
from regularizer.matchers.arbitrator import Arbitrator
from regularizer.matchers.semantic_classifier import SemanticClassifier
from regularizer.models import Candidate, Decision, DecisionPath, IdentifierPair, TypeInference, Verdict
from regularizer.progress import ProgressTracker
from regularizer.reference_index import NoisyPairSet, ReferenceSet
from regularizer.validators import ReferenceAuthorityValidator, TemporalValidator
from regularizer.vehicle_types import VehicleTypeClassifier


Job = Tuple[IdentifierPair, Candidate, Optional[TypeInference]]


@dataclass
class Partition:
    """Noisy pairs split by whether they need validation."""
    decided: List[Decision] = field(default_factory=list)
    jobs: List[Job] = field(default_factory=list)


def fast_path_decision(
    pair: IdentifierPair, vetoed: Optional[Candidate], inferred: Optional[TypeInference] = None
) -> Decision:
    """Decision for a pair that has no candidate left to validate."""
    if vetoed is not None:
        return Decision(
            pair=pair,
            candidate=vetoed,
            should_regularize=False,
            rationale=f"Numeric difference in model code vs {vetoed.reference.label} - likely different model",
            path=DecisionPath.NUMERIC_VETO,
            inferred=inferred,
        )
    return Decision(
        pair=pair,
        candidate=None,
        should_regularize=False,
        rationale="No similar reference pair found - treat as new",
        path=DecisionPath.NO_CANDIDATE,
        inferred=inferred,
    )


def type_only_decision(pair: IdentifierPair, inferred: TypeInference) -> Decision:
    return Decision(
        pair=pair,
        candidate=None,
        should_regularize=False,
        rationale=f"Type: {inferred} - {inferred.rationale}",
        path=DecisionPath.TYPE_ONLY,
        inferred=inferred,
    )


class RegularizationPipeline:
    """
    Resolves a NoisyPairSet against a ReferenceSet.

    Args:
        reference_validator (ReferenceAuthorityValidator): Catalog cross-check.
        temporal_validator (TemporalValidator): Year-range compatibility check.
        classifier (SemanticClassifier): Source of per-pair classifier sessions.
        settings (ResolverSettings): Thresholds and concurrency width.
        type_classifier (Optional[VehicleTypeClassifier]): Infers a vehicle type
            per noisy pair; used only when `settings.type_inference` is set.
    """

    def __init__(
        self,
        reference_validator: ReferenceAuthorityValidator,
        temporal_validator: TemporalValidator,
        classifier: SemanticClassifier,
        settings: Optional[ResolverSettings] = None,
        type_classifier: Optional[VehicleTypeClassifier] = None,
    ):
        self.settings = settings or ResolverSettings()
        self.reference_validator = reference_validator
        self.temporal_validator = temporal_validator
        self.classifier = classifier
        self.type_classifier = type_classifier
        self.arbitrator = Arbitrator.from_settings(self.settings)

    def partition(
        self,
        noisy: NoisyPairSet,
        selector: CandidateSelector,
        types: Optional[Dict[Tuple[str, str], TypeInference]] = None,
    ) -> Partition:
        partition = Partition()
        for pair in noisy:
            inferred = types.get(pair.key) if types else None
            vehicle_type = inferred.vehicle_type if inferred else None
            if vehicle_type is not None and not selector.matches_type(vehicle_type):
                partition.decided.append(type_only_decision(pair, inferred))
                continue
            selection = selector.select(pair, vehicle_type)
            if selection.best is None:
                partition.decided.append(fast_path_decision(pair, selection.vetoed, inferred))
            else:
                partition.jobs.append((pair, selection.best, inferred))
        return partition

    async def infer_types(self, noisy: NoisyPairSet) -> Optional[Dict[Tuple[str, str], TypeInference]]:
        if not self.settings.type_inference or self.type_classifier is None:
            return None
        types = await asyncio.to_thread(self.type_classifier.infer_all, noisy)
        counts = Counter(t.vehicle_type.value for t in types.values())
        logger.info(f"Inferred vehicle types: {dict(sorted(counts.items()))}")
        return types

    async def _classify(self, pair: IdentifierPair, candidate: Candidate) -> Optional[Verdict]:
        if candidate.normalized:
            return None
        # New session per pair; sessions are never shared
        return await self.classifier.session().classify(pair, candidate.reference)

    async def evaluate(
        self, pair: IdentifierPair, candidate: Candidate, inferred: Optional[TypeInference] = None
    ) -> Decision:
        """
        Validate and arbitrate one (noisy, candidate) job.

        The catalog validator runs in a worker thread with its own connection
        while the classifier session waits on its round trip.
        """
        reference = candidate.reference
        temporal_verdict = self.temporal_validator.validate(pair, reference)
        reference_verdict, classifier_verdict = await asyncio.gather(
            asyncio.to_thread(self.reference_validator.validate, pair, reference),
            self._classify(pair, candidate),
        )
        should_regularize, rationale = self.arbitrator.decide(
            reference_verdict, temporal_verdict, classifier_verdict, normalized=candidate.normalized
        )
        verdicts = tuple(v for v in (reference_verdict, temporal_verdict, classifier_verdict) if v is not None)
        path = DecisionPath.VALIDATED if classifier_verdict is not None else DecisionPath.NORMALIZATION
        decision = Decision(
            pair=pair,
            candidate=candidate,
            should_regularize=should_regularize,
            rationale=rationale,
            path=path,
            verdicts=verdicts,
            inferred=inferred,
        )
        if should_regularize:
            logger.debug(f"✓ {pair.label} → REGULARIZE to {reference.label}")
        else:
            logger.debug(f"✗ {pair.label} → PRESERVE")
        return decision

    async def _evaluate_bounded(
        self,
        semaphore: asyncio.Semaphore,
        pair: IdentifierPair,
        candidate: Candidate,
        inferred: Optional[TypeInference],
    ) -> Decision:
        async with semaphore:
            try:
                return await self.evaluate(pair, candidate, inferred)
            except Exception as e:
                logger.debug(f"⚠️ Evaluation failed for '{pair.label}': {e}")
                return Decision(
                    pair=pair,
                    candidate=candidate,
                    should_regularize=False,
                    rationale=f"Evaluation failed: {e}",
                    path=DecisionPath.FAILED,
                    inferred=inferred,
                )

    async def run(self, reference: ReferenceSet, noisy: NoisyPairSet) -> List[Decision]:
        """
        Resolve every noisy pair.

        Args:
            reference (ReferenceSet): Trusted pairs.
            noisy (NoisyPairSet): Pairs to resolve.

        Returns:
            List[Decision]: Exactly one decision per noisy pair, sorted by (make, model).
        """
        selector = CandidateSelector(reference, self.settings)
        types = await self.infer_types(noisy)
        partition = self.partition(noisy, selector, types)
        logger.info(f"No-candidate pairs (fast path): {len(partition.decided)}")
        logger.info(f"Validation pairs: {len(partition.jobs)}")

        results: List[Decision] = list(partition.decided)
        if partition.jobs:
            semaphore = asyncio.Semaphore(max(1, self.settings.concurrency))
            progress = ProgressTracker(len(partition.jobs), every=self.settings.progress_every)
            tasks = [
                asyncio.create_task(self._evaluate_bounded(semaphore, pair, candidate, inferred))
                for pair, candidate, inferred in partition.jobs
            ]
            logger.info(f"🚀 Launched {len(tasks)} validation tasks (width {self.settings.concurrency})")
            for finished in asyncio.as_completed(tasks):
                results.append(await finished)
                progress.record()

        return sorted(results, key=lambda d: d.pair.sort_key)
