import asyncio
import re
from typing import Dict, List, Optional, Tuple

from loguru import logger

from regularizer.clients import OpenAIClient
from regularizer.config import CLASSIFIER_TIMEOUT, OPENAI_MODEL
from regularizer.models import Classification, IdentifierPair, Verdict, VerdictLabel, format_year_range

SOURCE = "classifier"
DEFAULT_CONFIDENCE = 0.5

SYSTEM_INSTRUCTIONS = "You are analyzing vehicle registration database records for data quality."

PROMPT_TEMPLATE = """
You are one validation layer in a vehicle database regularization pipeline.

CONTEXT:
- Record A comes from recent registrations and mixes typos, truncations and genuinely new models
- Record B comes from cleaned, quality-assured reference data
- The two records were matched on string similarity as potential variants

YOUR TASK:
Determine if Record A is a VARIANT of Record B (same vehicle, different spelling/format).

Record A: {noisy_make} / {noisy_model} [registered: {noisy_years}]
Record B: {candidate_make} / {candidate_model} [registered: {candidate_years}]

ANSWER "yes" ONLY if this is the SAME vehicle and the classification is:
1. spellingVariant - Typo or misspelling (VOLV0→VOLVO, HOND→HONDA, SUSUK→SUZUKI)
2. truncationVariant - Format difference (CX3→CX-3, HRV→HR-V)

ANSWER "no" if the classification is:
3. newModel - Different models even if similar names (X4≠X3, UX≠GX, C300≠B200, CBR≠CR-V)
4. uncertain - Insufficient information to confidently determine

EXAMPLES:
VOLV0 / XC90 vs VOLVO / XC90 → spellingVariant | yes | 1.0 | typo: zero instead of letter O
MAZDA / CX3 vs MAZDA / CX-3 → truncationVariant | yes | 0.99 | hyphen formatting variant
BMW / X4 vs BMW / X3 → newModel | no | 1.0 | X4 is a different SUV model
HONDA / CBR vs HONDA / CR-V → newModel | no | 1.0 | CBR is a motorcycle, CR-V is an SUV

Respond with ONLY: classification | should_regularize (yes/no) | confidence (0-1) | brief_reason
"""

# Keyword spellings seen in free-text answers, per classification
_KEYWORDS: List[Tuple[Classification, Tuple[str, ...]]] = [
    (Classification.SPELLING_VARIANT, ("spellingvariant", "spelling-variant", "spelling variant", "spelling variation")),
    (Classification.TRUNCATION_VARIANT, ("truncationvariant", "truncation-variant", "truncation variant", "truncation")),
    (Classification.NEW_MODEL, ("newmodel", "new-model", "new model", "genuinely different")),
    (Classification.UNCERTAIN, ("uncertain",)),
]

_REGULARIZE_FIELD = re.compile(r"should[ _]regulari[sz]e\s*[:=]?\s*(yes|no)\b")
_YES_NO = re.compile(r"\b(yes|no)\b")
_CONFIDENCE_FIELD = re.compile(r"confidence\s*[:=]?\s*(\d+(?:\.\d+)?)\s*(%?)")
_NUMBER = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(%?)\s*$")


def build_prompt(noisy: IdentifierPair, candidate: IdentifierPair) -> str:
    return PROMPT_TEMPLATE.format(
        noisy_make=noisy.primary,
        noisy_model=noisy.secondary,
        noisy_years=format_year_range(noisy.period_range),
        candidate_make=candidate.primary,
        candidate_model=candidate.secondary,
        candidate_years=format_year_range(candidate.period_range),
    )


def _to_confidence(number: str, percent: str) -> Optional[float]:
    value = float(number)
    if percent or 1.0 < value <= 100.0:
        value /= 100.0
    if 0.0 <= value <= 1.0:
        return value
    return None


def _find_classification(text: str) -> Classification:
    earliest = None
    for classification, keywords in _KEYWORDS:
        for keyword in keywords:
            pos = text.find(keyword)
            if pos >= 0 and (earliest is None or pos < earliest[0]):
                earliest = (pos, classification)
    return earliest[1] if earliest else Classification.UNCERTAIN


def _find_recommendation(text: str, fields: List[str]) -> Optional[bool]:
    match = _REGULARIZE_FIELD.search(text)
    if match:
        return match.group(1) == "yes"
    if len(fields) >= 2 and fields[1] in ("yes", "no"):
        return fields[1] == "yes"
    match = _YES_NO.search(text.replace("yes/no", ""))
    if match:
        return match.group(1) == "yes"
    return None


def _find_confidence(text: str, fields: List[str]) -> float:
    if len(fields) >= 3:
        match = _NUMBER.match(fields[2])
        if match:
            value = _to_confidence(match.group(1), match.group(2))
            if value is not None:
                return value
    match = _CONFIDENCE_FIELD.search(text.replace("(0-1)", ""))
    if match:
        value = _to_confidence(match.group(1), match.group(2))
        if value is not None:
            return value
    return DEFAULT_CONFIDENCE


def uncertain(rationale: str) -> Verdict:
    return Verdict(
        label=Classification.UNCERTAIN.verdict_label,
        confidence=DEFAULT_CONFIDENCE,
        rationale=rationale,
        source=SOURCE,
        classification=Classification.UNCERTAIN,
    )


def parse_classifier_response(text: Optional[str]) -> Verdict:
    """
    Parse a free-text classifier answer into a Verdict.

    Expected shape is "classification | yes/no | confidence | reason", but any
    prose is accepted: keywords are searched for, the confidence defaults to
    0.5, and an empty answer is treated as uncertain.

    Args:
        text (Optional[str]): Raw model output.

    Returns:
        Verdict: Classifier verdict; never raises.
    """
    raw = (text or "").strip()
    if not raw:
        return uncertain("Empty classifier response")

    content = raw.lower()
    fields = [f.strip() for f in content.split("|")]
    classification = _find_classification(content)
    recommends = _find_recommendation(content, fields)
    confidence = _find_confidence(content, fields)

    # A variant label with an explicit "no" contradicts itself
    if classification.verdict_label is VerdictLabel.SUPPORT and recommends is False:
        classification = Classification.UNCERTAIN

    raw_fields = [f.strip() for f in raw.split("|")]
    rationale = raw_fields[3] if len(raw_fields) >= 4 and raw_fields[3] else raw

    return Verdict(
        label=classification.verdict_label,
        confidence=confidence,
        rationale=rationale,
        source=SOURCE,
        classification=classification,
        recommends_regularize=recommends,
    )


class ClassifierSession:
    """
    One isolated conversation with the classifier.

    A session carries the messages for exactly one (noisy, candidate) pair and
    cannot be reused, so no pair's context leaks into another's judgment.
    """

    def __init__(
        self,
        client: OpenAIClient,
        model: str = OPENAI_MODEL,
        timeout: float = CLASSIFIER_TIMEOUT,
        instructions: str = SYSTEM_INSTRUCTIONS,
    ):
        self._client = client
        self.model = model
        self.timeout = timeout
        self.messages: List[Dict[str, str]] = [{"role": "system", "content": instructions}]
        self._used = False

    async def classify(self, noisy: IdentifierPair, candidate: IdentifierPair) -> Verdict:
        """
        Ask whether `noisy` is a spelling/format variant of `candidate`.

        Transport failures, timeouts and unreadable answers all come back as an
        `uncertain` verdict at confidence 0.5.
        """
        if self._used:
            raise RuntimeError("ClassifierSession is single-use; open a new session per pair")
        self._used = True

        self.messages.append({"role": "user", "content": build_prompt(noisy, candidate)})
        try:
            resp = await asyncio.wait_for(
                self._client.chat_completions_create(
                    model=self.model,
                    messages=list(self.messages),
                    temperature=0,
                    max_tokens=120,
                ),
                timeout=self.timeout,
            )
            answer = resp.choices[0].message.content
        except asyncio.TimeoutError:
            logger.debug(f"⏱️ Classifier TIMEOUT for '{noisy.label}' after {self.timeout}s")
            return uncertain(f"Classifier timed out after {self.timeout}s")
        except Exception as e:
            logger.debug(f"⚠️ Classifier check failed for '{noisy.label}': {e}")
            return uncertain(f"Classifier error: {e}")

        self.messages.append({"role": "assistant", "content": answer or ""})
        verdict = parse_classifier_response(answer)
        logger.debug(
            f"🤖 {noisy.label} vs {candidate.label}: {verdict.classification.value} ({verdict.confidence:.2f})"
        )
        return verdict


class SemanticClassifier:
    """Hands out a fresh ClassifierSession for every pair."""

    def __init__(self, client: OpenAIClient, model: str = OPENAI_MODEL, timeout: float = CLASSIFIER_TIMEOUT):
        self.client = client
        self.model = model
        self.timeout = timeout

    def session(self) -> ClassifierSession:
        return ClassifierSession(self.client, model=self.model, timeout=self.timeout)

    async def classify(self, noisy: IdentifierPair, candidate: IdentifierPair) -> Verdict:
        return await self.session().classify(noisy, candidate)
