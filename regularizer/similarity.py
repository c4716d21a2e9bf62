"""
String similarity for make/model identifiers.

Scores are pure functions of their two inputs and always fall in [0, 1].
Comparisons are case-insensitive.
"""
import re
from typing import Optional

from rapidfuzz.distance import JaroWinkler, Levenshtein

from regularizer.config import NORMALIZATION_BOOST, NUMERIC_DIVERGENCE_THRESHOLD, SEPARATOR

LEVENSHTEIN_WEIGHT = 0.4
JARO_WINKLER_WEIGHT = 0.6

_DIGITS = re.compile(r"\d")


def levenshtein_score(a: str, b: str) -> float:
    """1 - levenshtein(a, b) / max(len(a), len(b))."""
    a, b = a.upper(), b.upper()
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(a, b) / longest


def jaro_winkler_score(a: str, b: str) -> float:
    """Jaro-Winkler similarity; rewards shared prefixes and tolerates adjacent swaps."""
    a, b = a.upper(), b.upper()
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return JaroWinkler.similarity(a, b, prefix_weight=0.1)


def blended_score(
    a: str,
    b: str,
    lev_weight: float = LEVENSHTEIN_WEIGHT,
    jw_weight: float = JARO_WINKLER_WEIGHT,
) -> float:
    """
    Weighted blend of the edit-distance and Jaro-Winkler scores.

    Make/model codes are short and keep their prefix when truncated, so the
    prefix-aware metric gets the larger weight.
    """
    score = (lev_weight * levenshtein_score(a, b)) + (jw_weight * jaro_winkler_score(a, b))
    return max(0.0, min(score, 1.0))


def strip_separator(s: str, separator: str = SEPARATOR) -> str:
    return s.upper().replace(separator, "")


def normalization_boost(
    a: str,
    b: str,
    separator: str = SEPARATOR,
    boost: float = NORMALIZATION_BOOST,
) -> Optional[float]:
    """
    Return `boost` when `a` and `b` differ only by `separator` (CX3 vs CX-3).

    Returns None when the boost does not apply.
    """
    if a.upper() != b.upper() and strip_separator(a, separator) == strip_separator(b, separator):
        return boost
    return None


def similarity(a: str, b: str, separator: str = SEPARATOR, boost: float = NORMALIZATION_BOOST) -> float:
    """
    Symmetric, reflexive similarity in [0, 1].

    Args:
        a (str): First identifier.
        b (str): Second identifier.
        separator (str): Separator ignored by the normalization boost.
        boost (float): Score forced for separator-only differences.

    Returns:
        float: 1.0 for identical identifiers, `boost` for separator variants,
               otherwise the blended edit-distance/Jaro-Winkler score.
    """
    if a.upper() == b.upper():
        return 1.0
    boosted = normalization_boost(a, b, separator=separator, boost=boost)
    if boosted is not None:
        return boosted
    return blended_score(a, b)


def embedded_number(s: str) -> Optional[int]:
    """Integer formed by all digits in `s` (e.g. "C300" -> 300), or None."""
    digits = "".join(_DIGITS.findall(s))
    if not digits:
        return None
    return int(digits)


def numeric_divergence(a: str, b: str, threshold: float = NUMERIC_DIVERGENCE_THRESHOLD) -> bool:
    """
    True when both identifiers embed a positive number and the two numbers
    differ by more than `threshold`, relative to the smaller one.

    Catches structurally similar but distinct product codes such as 328 vs 228.
    """
    n1, n2 = embedded_number(a), embedded_number(b)
    if not n1 or not n2:
        return False
    return abs(n1 - n2) / min(n1, n2) > threshold
