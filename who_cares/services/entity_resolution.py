from __future__ import annotations

import asyncio
import logging
import re
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

from ..core.config import Settings, get_settings
from .aliases import ALIASES, ALIAS_SCAN_ORDER, alias_key
from .errors import UpstreamDegraded
from .llm import chat_completion, has_llm_credentials
from .llm_parsing import parse_resolution_map

logger = logging.getLogger(__name__)


# Parenthetical ticker annotations: "(SHL)", "(ASX: SHL)", "(EY)".
_TICKER_NOTE_RE = re.compile(r"\s*\((?:[A-Z]{2,6}\s*:\s*)?[A-Z0-9]{1,5}\)")
_SUBSIDIARIES_RE = re.compile(r"[\s,]+(?:and|&)\s+(?:its\s+)?subsidiaries\s*$", re.IGNORECASE)
_LEGAL_SUFFIX_RE = re.compile(
    r"[\s,]+(?:pty\.?\s+ltd|ltd|limited|pty|inc|incorporated|corporation|corp|"
    r"group|holdings|plc|llc)\.?\s*$",
    re.IGNORECASE,
)
_TRAILING_COUNTRY_RE = re.compile(r"(?:[\s,]+australia|\s*\(australia\))\s*$", re.IGNORECASE)

_STRIP_PATTERNS = (_TICKER_NOTE_RE, _SUBSIDIARIES_RE, _LEGAL_SUFFIX_RE, _TRAILING_COUNTRY_RE)

_FIRST_LETTER_RE = re.compile(r"[^\W\d_]")

# Hard stop for the strip/case loop; each pass only ever shortens the name.
_MAX_NORMALISE_PASSES = 10


def _collapse(s: str) -> str:
    return " ".join(s.split())


def strip_suffixes(name: str) -> str:
    """
    Remove corporate suffixes and ticker annotations until nothing changes.

    Never reduces a name to the empty string: if a pass would empty it, the
    previous form is kept.
    """
    current = _collapse(name)
    while True:
        stripped = current
        for pattern in _STRIP_PATTERNS:
            stripped = pattern.sub("", stripped)
        stripped = _collapse(stripped).rstrip(" ,")
        if not stripped or stripped == current:
            return current
        current = stripped


def _title_token(token: str) -> str:
    if token.isupper() and len(token) <= 4:
        return token  # acronym
    if not (token.isupper() or token.islower()):
        return token  # mixed case (McKenzie, BlackRock) or no letters
    lowered = token.lower()
    m = _FIRST_LETTER_RE.search(lowered)
    if not m:
        return lowered
    i = m.start()
    return lowered[:i] + lowered[i].upper() + lowered[i + 1 :]


def title_case(name: str) -> str:
    return " ".join(_title_token(t) for t in name.split())


def _tokens_contain(haystack: List[str], needle: List[str]) -> bool:
    n = len(needle)
    if not n or n > len(haystack):
        return False
    return any(haystack[i : i + n] == needle for i in range(len(haystack) - n + 1))


def lookup_alias(name: str) -> Optional[str]:
    """
    Tier 1: curated alias table.

    Exact match on the folded key (raw, then suffix-stripped); failing that,
    the first table entry (in table order) that the stripped name contains
    as whole words, or that the stripped name is a whole-word prefix of.
    """
    raw_key = alias_key(name)
    if not raw_key:
        return None
    if raw_key in ALIASES:
        return ALIASES[raw_key]

    key = alias_key(strip_suffixes(name))
    if key in ALIASES:
        return ALIASES[key]

    tokens = key.split()
    for alias, canonical in ALIAS_SCAN_ORDER:
        alias_tokens = alias.split()
        if _tokens_contain(tokens, alias_tokens):
            return canonical
        if len(tokens) < len(alias_tokens) and alias_tokens[: len(tokens)] == tokens:
            return canonical
    return None


def normalize_name(name: str) -> str:
    """Tier 2: suffix stripping plus casing, iterated to a fixed point."""
    current = _collapse(name)
    for _ in range(_MAX_NORMALISE_PASSES):
        nxt = title_case(strip_suffixes(current))
        if nxt == current:
            break
        current = nxt
    return current


def canonical_name(name: str) -> str:
    """
    Offline canonical form of a single name (Tier 1, else Tier 2).

    The alias table is consulted again with the Tier 2 form so that feeding
    the result back in always lands on the same value.
    """
    normalized = normalize_name(name)
    return lookup_alias(name) or lookup_alias(normalized) or normalized


def _consolidate_case(mapping: Dict[str, str]) -> Dict[str, str]:
    """
    Collapse canonical spellings that differ only by case onto one spelling:
    the one assigned to the first input name in sorted order.
    """
    chosen: Dict[str, str] = {}
    for raw in sorted(mapping):
        chosen.setdefault(mapping[raw].casefold(), mapping[raw])
    return {raw: chosen[canon.casefold()] for raw, canon in mapping.items()}


def _distinct(names: Iterable[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for n in names:
        seen.setdefault(n, None)
    return list(seen)


def canonicalize_offline(names: Iterable[str]) -> Dict[str, str]:
    """Tier 1/2 canonicalisation of a set of names. Total over its input."""
    mapping = {n: canonical_name(n) for n in _distinct(names)}
    return _consolidate_case(mapping)


def _follow_chain(start: str, answers: Mapping[str, str]) -> str:
    """Follow original -> canonical links inside one response to a fixed point."""
    current = start
    seen = {current}
    while current in answers and answers[current] != current:
        current = answers[current]
        if current in seen:
            break
        seen.add(current)
    return current


# ---------------------------------------------------------------------------
# Tier 3: batch-scope semantic resolution
# ---------------------------------------------------------------------------


class SemanticResolutionService(Protocol):
    async def resolve(self, names: Sequence[str]) -> Dict[str, str]:
        """Return a mapping original name -> canonical name (may be partial)."""
        ...


RESOLUTION_PROMPT = """You are an expert at entity resolution. Below is a list of entity names extracted from multiple companies. Many refer to the SAME entity with different naming variations.

ENTITY LIST:
{entity_list}

Your task: Identify which entities are THE SAME and assign a single canonical name.

Matching rules:
- "Ernst & Young (EY)", "EY", "Ernst & Young Australia" -> "Ernst & Young"
- "BlackRock Group", "BlackRock, Inc." -> "BlackRock"
- "State Street Corporation and subsidiaries", "State Street" -> "State Street"
- "Vanguard funds", "The Vanguard Group" -> "Vanguard"
- "Macquarie Group Limited", "Macquarie Capital" -> "Macquarie"
- "HSBC Custody Nominees (Australia) Limited" -> "HSBC Custody Nominees"
- "Sonic Healthcare Ltd (ASX: SHL)" -> "Sonic Healthcare"
- "Australian Competition and Consumer Commission" -> "ACCC"
- Remove suffixes: Ltd, Limited, Pty, Inc, Corporation, Group, Australia
- Government bodies use acronyms: ASIC, ACCC, ASX, ATO, APRA
- People: normalize variations like "Kate (Kathryn) McKenzie" -> "Kate McKenzie"

Return ONLY a JSON object mapping every original name to its canonical form. No markdown, no explanation:
{{"original name": "canonical name", ...}}"""


def build_resolution_prompt(names: Sequence[str]) -> str:
    entity_list = "\n".join(f"{i}. {name}" for i, name in enumerate(names, start=1))
    return RESOLUTION_PROMPT.format(entity_list=entity_list)


class LLMSemanticResolver:
    """Single batched resolution call against the configured chat model."""

    def __init__(
        self,
        client=None,
        model: str | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        self._client = client
        self._model = model
        self._timeout = timeout

    async def resolve(self, names: Sequence[str]) -> Dict[str, str]:
        if not names:
            return {}
        prompt = build_resolution_prompt(names)
        raw = await asyncio.to_thread(
            chat_completion,
            prompt,
            temperature=0.0,
            max_tokens=8000,
            client=self._client,
            model=self._model,
            timeout=self._timeout if self._timeout is not None else get_settings().RESOLUTION_TIMEOUT_SECONDS,
        )
        return parse_resolution_map(raw)


def build_semantic_resolver(settings: Settings | None = None) -> Optional[SemanticResolutionService]:
    settings = settings or get_settings()
    if not settings.SEMANTIC_RESOLUTION_ENABLED or not has_llm_credentials(settings):
        return None
    return LLMSemanticResolver(timeout=settings.RESOLUTION_TIMEOUT_SECONDS)


class EntityCanonicalizer:
    """
    Batch canonicaliser: Tier 1/2 for every name, optionally overridden by
    one Tier 3 call over all distinct names in the batch.

    ``canonicalize`` never raises on resolver failure; it degrades to the
    offline mapping and logs.
    """

    def __init__(
        self,
        resolver: Optional[SemanticResolutionService] = None,
        *,
        timeout: float | None = None,
    ) -> None:
        self.resolver = resolver
        self.timeout = timeout if timeout is not None else get_settings().RESOLUTION_TIMEOUT_SECONDS

    @property
    def mode(self) -> str:
        return "semantic" if self.resolver is not None else "offline"

    async def canonicalize(self, names: Iterable[str]) -> Dict[str, str]:
        distinct = _distinct(names)
        mapping = {n: canonical_name(n) for n in distinct}
        if not distinct or self.resolver is None:
            return _consolidate_case(mapping)

        answers = await self._resolve_semantic(distinct)
        if answers is None:
            return _consolidate_case(mapping)

        resolved, fallback = self._merge(distinct, answers, mapping)
        logger.info(
            "Semantic resolution: %d of %d names resolved, %d fell back to offline",
            resolved,
            len(distinct),
            fallback,
            extra={"step": "canonicalize"},
        )
        return _consolidate_case(mapping)

    async def _resolve_semantic(self, names: List[str]) -> Optional[Dict[str, str]]:
        try:
            return await asyncio.wait_for(self.resolver.resolve(names), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Semantic resolution timed out after %.1fs; using offline canonicalisation",
                self.timeout,
                extra={"step": "canonicalize"},
            )
        except UpstreamDegraded as e:
            logger.warning(
                "Semantic resolution unusable (%s); using offline canonicalisation",
                e,
                extra={"step": "canonicalize"},
            )
        except Exception:
            logger.exception(
                "Semantic resolution failed; using offline canonicalisation",
                extra={"step": "canonicalize"},
            )
        return None

    @staticmethod
    def _merge(
        names: List[str],
        answers: Mapping[str, str],
        mapping: Dict[str, str],
    ) -> Tuple[int, int]:
        """
        Overwrite ``mapping`` in place with usable semantic answers.

        Each answer is passed through the offline tiers so the stored value
        is a fixed point of ``canonical_name``.
        """
        resolved = fallback = 0
        for name in names:
            answer = answers.get(name)
            if answer is None or not answer.strip():
                fallback += 1
                continue
            mapping[name] = canonical_name(_collapse(_follow_chain(answer, answers)))
            resolved += 1
        return resolved, fallback
