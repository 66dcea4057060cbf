from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Protocol, Sequence

from ..core.config import Settings, get_settings
from .errors import UpstreamDegraded
from .llm import chat_completion, has_llm_credentials
from .llm_parsing import MAX_NARRATIVE_ITEMS, parse_narrative
from .records import (
    CompanyRelationships,
    NarrativeSummary,
    SuggestedApproach,
    WhoCaresEntity,
)

logger = logging.getLogger(__name__)

# Entities beyond this rank are left out of the prompt.
PROMPT_ENTITY_LIMIT = 10

ADVISORY_TYPES = {
    "auditor": "Audit and restructuring advisory",
    "shareholder": "Portfolio stress review",
    "director": "Board advisory",
    "executive": "Board advisory",
    "lender": "Debt restructuring",
    "broker": "Capital raising",
    "advisor": "Transaction advisory",
    "pe_firm": "M&A / special situations",
    "competitor": "M&A / special situations",
    "government": "Regulatory engagement",
    "registry": "Shareholder communications",
}
DEFAULT_ADVISORY_TYPE = "Advisory"


class NarrativeService(Protocol):
    async def generate(self, prompt: str) -> str:
        ...


class LLMNarrativeService:
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

    async def generate(self, prompt: str) -> str:
        return await asyncio.to_thread(
            chat_completion,
            prompt,
            temperature=0.3,
            max_tokens=1500,
            client=self._client,
            model=self._model,
            timeout=self._timeout if self._timeout is not None else get_settings().NARRATIVE_TIMEOUT_SECONDS,
        )


NARRATIVE_PROMPT = """You are advising a corporate restructuring and advisory team.

The following listed companies are under financial stress:
{company_lines}

These entities are connected to two or more of those companies ("WHO CARES" list):
{entity_lines}

Write a short briefing. Return ONLY a JSON object, no markdown:
{{
  "headline": "one sentence",
  "key_findings": ["up to 3 findings"],
  "suggested_approaches": [
    {{"target": "entity name", "angle": "why they care and how to open", "advisory_type": "type of advisory work"}}
  ],
  "disclaimer": "one sentence"
}}
Use at most 3 key findings and at most 3 suggested approaches. Only name entities from the list above."""


def _company_line(c: CompanyRelationships) -> str:
    line = f"- {c.name} ({c.exchange}: {c.ticker})"
    if c.stress_signal:
        line += f" stress: {c.stress_signal}"
    return line


def _entity_line(e: WhoCaresEntity) -> str:
    return (
        f"- {e.entity_name} [{e.entity_kind}, {e.primary_category}] "
        f"exposed to {e.exposure_count}: {', '.join(e.exposed_companies)}"
    )


def rank_entities(who_cares: Sequence[WhoCaresEntity]) -> List[WhoCaresEntity]:
    """Exposure count descending; ties keep the order given."""
    return sorted(who_cares, key=lambda e: e.exposure_count, reverse=True)


def build_narrative_prompt(
    companies: Sequence[CompanyRelationships],
    who_cares: Sequence[WhoCaresEntity],
) -> str:
    top = rank_entities(who_cares)[:PROMPT_ENTITY_LIMIT]
    return NARRATIVE_PROMPT.format(
        company_lines="\n".join(_company_line(c) for c in companies) or "- (none)",
        entity_lines="\n".join(_entity_line(e) for e in top),
    )


def empty_summary(total_companies: int) -> NarrativeSummary:
    return NarrativeSummary(
        headline="No multi-exposure entities found",
        key_findings=(
            f"None of the {total_companies} companies analysed share a relationship entity.",
        ),
        generated_by="empty",
    )


def template_summary(
    companies: Sequence[CompanyRelationships],
    who_cares: Sequence[WhoCaresEntity],
) -> NarrativeSummary:
    """Deterministic summary from the ranked entities and the batch size."""
    all_ranked = rank_entities(who_cares)
    top = all_ranked[0]
    total = len(companies)
    headline = (
        f"{top.entity_name} is exposed to {top.exposure_count} of "
        f"{total} stressed companies"
    )

    ranked = all_ranked[:MAX_NARRATIVE_ITEMS]
    findings: List[str] = [
        f"{e.entity_name} ({e.primary_category}) is connected to "
        f"{', '.join(e.exposed_companies)}."
        for e in ranked
    ]
    if len(all_ranked) > len(ranked):
        findings[-1] += f" {len(all_ranked) - len(ranked)} more multi-exposure entities found."

    approaches = tuple(
        SuggestedApproach(
            target=e.entity_name,
            angle=f"Exposure across {e.exposure_count} stressed holdings: {', '.join(e.exposed_companies)}",
            advisory_type=ADVISORY_TYPES.get(e.primary_category, DEFAULT_ADVISORY_TYPE),
        )
        for e in ranked
    )
    return NarrativeSummary(
        headline=headline,
        key_findings=tuple(findings),
        suggested_approaches=approaches,
        generated_by="template",
    )


class NarrativeSummarizer:
    """
    ``summarize`` never raises for service trouble: no service, a failed call,
    a timeout or an unusable response all yield the template summary.
    """

    def __init__(
        self,
        service: Optional[NarrativeService] = None,
        *,
        timeout: float | None = None,
    ) -> None:
        self.service = service
        self.timeout = timeout if timeout is not None else get_settings().NARRATIVE_TIMEOUT_SECONDS

    async def summarize(
        self,
        companies: Sequence[CompanyRelationships],
        who_cares: Sequence[WhoCaresEntity],
    ) -> NarrativeSummary:
        if not who_cares:
            return empty_summary(len(companies))
        if self.service is None:
            return template_summary(companies, who_cares)

        prompt = build_narrative_prompt(companies, who_cares)
        try:
            raw = await asyncio.wait_for(self.service.generate(prompt), timeout=self.timeout)
            payload = parse_narrative(raw)
        except asyncio.TimeoutError:
            logger.warning(
                "Narrative generation timed out after %.1fs; using template",
                self.timeout,
                extra={"step": "summarize"},
            )
            return template_summary(companies, who_cares)
        except UpstreamDegraded as e:
            logger.warning(
                "Narrative response unusable (%s); using template",
                e,
                extra={"step": "summarize"},
            )
            return template_summary(companies, who_cares)
        except Exception:
            logger.exception("Narrative generation failed; using template", extra={"step": "summarize"})
            return template_summary(companies, who_cares)

        defaults = NarrativeSummary(headline=payload.headline)
        return NarrativeSummary(
            headline=payload.headline,
            key_findings=tuple(payload.key_findings),
            suggested_approaches=tuple(
                SuggestedApproach(
                    target=a.target,
                    angle=a.angle,
                    advisory_type=a.advisory_type,
                )
                for a in payload.suggested_approaches
            ),
            disclaimer=(payload.disclaimer or "").strip() or defaults.disclaimer,
            generated_by="llm",
        )


def build_narrative_summarizer(settings: Settings | None = None) -> NarrativeSummarizer:
    settings = settings or get_settings()
    service = (
        LLMNarrativeService(timeout=settings.NARRATIVE_TIMEOUT_SECONDS)
        if has_llm_credentials(settings)
        else None
    )
    return NarrativeSummarizer(service, timeout=settings.NARRATIVE_TIMEOUT_SECONDS)
