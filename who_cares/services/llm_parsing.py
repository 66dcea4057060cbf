"""
Strict parse-and-validate step for AI/service responses.

Every untyped response is turned into typed records here or rejected with
``UpstreamDegraded``; loosely-typed JSON never travels further into the
pipeline.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List

from pydantic import BaseModel, ValidationError, field_validator

from .errors import UpstreamDegraded
from .records import RawEntityMention, normalize_category

logger = logging.getLogger(__name__)

_CODE_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)

MAX_NARRATIVE_ITEMS = 3


class MentionPayload(BaseModel):
    name: str
    type: str = "other"
    details: str = ""

    @field_validator("name", mode="before")
    @classmethod
    def _name_not_blank(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("entity name must be a non-empty string")
        return " ".join(v.split())

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, v: Any) -> str:
        return normalize_category(v if isinstance(v, str) else None)

    @field_validator("details", mode="before")
    @classmethod
    def _details_to_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip()


class ApproachPayload(BaseModel):
    target: str
    angle: str = ""
    advisory_type: str = ""


class NarrativePayload(BaseModel):
    headline: str
    key_findings: List[str] = []
    suggested_approaches: List[ApproachPayload] = []
    disclaimer: str | None = None

    @field_validator("headline")
    @classmethod
    def _headline_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("headline must not be empty")
        return v

    @field_validator("key_findings")
    @classmethod
    def _trim_findings(cls, v: List[str]) -> List[str]:
        return [f.strip() for f in v if f and f.strip()][:MAX_NARRATIVE_ITEMS]

    @field_validator("suggested_approaches")
    @classmethod
    def _trim_approaches(cls, v: List[ApproachPayload]) -> List[ApproachPayload]:
        return v[:MAX_NARRATIVE_ITEMS]


def _extract_json_block(raw: str, opener: str, closer: str) -> Any:
    """
    Pull the outermost ``opener ... closer`` block out of a model response
    (tolerating markdown code fences and leading prose) and decode it.
    """
    if not raw or not raw.strip():
        raise UpstreamDegraded("empty response")

    text = _CODE_FENCE_RE.sub("", raw).strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    start = text.find(opener)
    end = text.rfind(closer)
    if start == -1 or end == -1 or end <= start:
        raise UpstreamDegraded(f"no JSON {opener}{closer} block found in response")

    try:
        return json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise UpstreamDegraded(f"unparseable JSON: {e.msg}") from e


def parse_entity_mentions(raw: str, source_ticker: str) -> List[RawEntityMention]:
    """
    Parse an extraction response (a JSON array of ``{name, type, details}``).

    Individual malformed items are dropped; a response that is not a JSON
    array at all raises ``UpstreamDegraded``.
    """
    data = _extract_json_block(raw, "[", "]")
    if isinstance(data, dict):
        data = data.get("entities")
    if not isinstance(data, list):
        raise UpstreamDegraded("extraction response is not a JSON array")

    mentions: List[RawEntityMention] = []
    dropped = 0
    for item in data:
        try:
            payload = MentionPayload.model_validate(item)
        except ValidationError:
            dropped += 1
            continue
        mentions.append(
            RawEntityMention(
                name=payload.name,
                type=payload.type,
                details=payload.details,
                source_ticker=source_ticker,
            )
        )

    if dropped:
        logger.debug(
            "Dropped %d malformed entity items",
            dropped,
            extra={"ticker": source_ticker, "step": "parse_entity_mentions"},
        )
    return mentions


def parse_resolution_map(raw: str) -> Dict[str, str]:
    """
    Parse a semantic-resolution response (a JSON object of original -> canonical).

    Non-string and blank entries are skipped; the caller treats any name
    missing from the result as unresolved.
    """
    data = _extract_json_block(raw, "{", "}")
    if not isinstance(data, dict):
        raise UpstreamDegraded("resolution response is not a JSON object")

    mapping: Dict[str, str] = {}
    for original, canonical in data.items():
        if not isinstance(original, str) or not isinstance(canonical, str):
            continue
        canonical = " ".join(canonical.split())
        if canonical:
            mapping[original] = canonical
    return mapping


def parse_narrative(raw: str) -> NarrativePayload:
    data = _extract_json_block(raw, "{", "}")
    try:
        return NarrativePayload.model_validate(data)
    except ValidationError as e:
        raise UpstreamDegraded(f"narrative response failed validation: {e.error_count()} errors") from e
