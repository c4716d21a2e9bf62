"""
Cross-check noisy and candidate pairs against the authoritative catalog.
"""
from typing import FrozenSet, List

from loguru import logger

from regularizer.clients.catalog_client import CatalogRecord, ReferenceCatalog
from regularizer.models import IdentifierPair, Verdict, VerdictLabel

SOURCE = "reference"


def _categories(records: List[CatalogRecord]) -> FrozenSet[str]:
    return frozenset(r.category for r in records if r.category)


def _fmt(categories: FrozenSet[str]) -> str:
    return ", ".join(sorted(categories)) or "untyped"


class ReferenceAuthorityValidator:
    """
    Compares the catalog categories of the two pairs.

    Each call opens and closes its own catalog session, so concurrent calls
    never share a connection. Lookup failures degrade to NEUTRAL at confidence 0.
    """

    def __init__(self, catalog: ReferenceCatalog):
        self.catalog = catalog

    def validate(self, noisy: IdentifierPair, candidate: IdentifierPair) -> Verdict:
        try:
            with self.catalog.session() as session:
                noisy_records = session.lookup(noisy.primary, noisy.secondary)
                candidate_records = session.lookup(candidate.primary, candidate.secondary)
        except Exception as e:
            logger.debug(f"⚠️ Catalog lookup failed for '{noisy.label}': {e}")
            return Verdict(
                label=VerdictLabel.NEUTRAL,
                confidence=0.0,
                rationale=f"Catalog unavailable: {e}",
                source=SOURCE,
            )
        return judge_catalog_evidence(noisy_records, candidate_records)


def judge_catalog_evidence(noisy_records: List[CatalogRecord], candidate_records: List[CatalogRecord]) -> Verdict:
    """
    Turn catalog lookups into a verdict.

    Args:
        noisy_records (List[CatalogRecord]): Catalog rows for the noisy pair.
        candidate_records (List[CatalogRecord]): Catalog rows for the candidate pair.

    Returns:
        Verdict: SUPPORT when both share a category or only the candidate is known,
                 PREVENT when the categories differ or only the noisy pair is known,
                 NEUTRAL when neither is known.
    """
    noisy_found = bool(noisy_records)
    candidate_found = bool(candidate_records)

    if noisy_found and candidate_found:
        noisy_types = _categories(noisy_records)
        candidate_types = _categories(candidate_records)
        shared = noisy_types & candidate_types
        # An untyped record cannot contradict the other side
        if shared or not noisy_types or not candidate_types:
            return Verdict(
                label=VerdictLabel.SUPPORT,
                confidence=0.9,
                rationale=f"Both found in catalog as same vehicle type ({_fmt(shared)})",
                source=SOURCE,
            )
        return Verdict(
            label=VerdictLabel.PREVENT,
            confidence=0.95,
            rationale=f"Both found in catalog but different types ({_fmt(noisy_types)} vs {_fmt(candidate_types)})",
            source=SOURCE,
        )
    if noisy_found:
        return Verdict(
            label=VerdictLabel.PREVENT,
            confidence=0.9,
            rationale="Noisy pair found in catalog, candidate not found - likely a distinct vehicle",
            source=SOURCE,
        )
    if candidate_found:
        return Verdict(
            label=VerdictLabel.SUPPORT,
            confidence=0.8,
            rationale=f"Candidate in catalog as {_fmt(_categories(candidate_records))}, noisy pair not found - possible typo/truncation",
            source=SOURCE,
        )
    return Verdict(
        label=VerdictLabel.NEUTRAL,
        confidence=0.0,
        rationale="Neither found in catalog - no catalog evidence available",
        source=SOURCE,
    )
