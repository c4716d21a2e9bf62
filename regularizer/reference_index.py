"""
Immutable reference and noisy pair sets.

Both sets are built once per run and never change afterwards, so concurrent
tasks can read them without locking.
"""
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Tuple

from loguru import logger

from regularizer.models import IdentifierPair


def is_well_formed(pair: IdentifierPair) -> bool:
    """Pairs with a blank make or model never reach the pipeline."""
    return bool((pair.primary or "").strip()) and bool((pair.secondary or "").strip())


def _dedupe(pairs: Iterable[IdentifierPair]) -> List[IdentifierPair]:
    seen = set()
    kept = []
    for pair in pairs:
        if not is_well_formed(pair):
            logger.debug(f"⚠️ Dropping malformed pair {pair.primary!r} / {pair.secondary!r}")
            continue
        if pair in seen:
            continue
        seen.add(pair)
        kept.append(pair)
    return sorted(kept, key=lambda p: p.sort_key)


class ReferenceSet:
    """Trusted pairs indexed by upper-cased primary attribute (make)."""

    def __init__(self, pairs: Iterable[IdentifierPair]):
        self._pairs: Tuple[IdentifierPair, ...] = tuple(_dedupe(pairs))
        self._keys = frozenset(p.key for p in self._pairs)
        index: Dict[str, List[IdentifierPair]] = {}
        for pair in self._pairs:
            index.setdefault(pair.primary.upper(), []).append(pair)
        self._index: Mapping[str, Tuple[IdentifierPair, ...]] = MappingProxyType(
            {make: tuple(group) for make, group in index.items()}
        )

    def __contains__(self, pair: IdentifierPair) -> bool:
        return pair.key in self._keys

    def __len__(self) -> int:
        return len(self._pairs)

    def __iter__(self) -> Iterator[IdentifierPair]:
        return iter(self._pairs)

    def primaries(self) -> Tuple[str, ...]:
        return tuple(sorted(self._index))

    def pairs_for(self, primary: str) -> Tuple[IdentifierPair, ...]:
        return self._index.get(primary.upper(), ())


class NoisyPairSet:
    """Evaluation-period pairs that are not already present verbatim in the reference set."""

    def __init__(self, pairs: Iterable[IdentifierPair], reference: ReferenceSet):
        self._pairs: Tuple[IdentifierPair, ...] = tuple(
            p for p in _dedupe(pairs) if p not in reference
        )

    def __len__(self) -> int:
        return len(self._pairs)

    def __iter__(self) -> Iterator[IdentifierPair]:
        return iter(self._pairs)


def build_reference_set(pairs: Iterable[IdentifierPair]) -> ReferenceSet:
    reference = ReferenceSet(pairs)
    logger.info(f"Reference set: {len(reference)} pairs across {len(reference.primaries())} makes")
    return reference


def build_noisy_set(pairs: Iterable[IdentifierPair], reference: ReferenceSet) -> NoisyPairSet:
    pairs = list(pairs)
    noisy = NoisyPairSet(pairs, reference)
    logger.info(f"Noisy set: {len(pairs)} evaluation pairs, {len(noisy)} not in the reference set")
    return noisy
