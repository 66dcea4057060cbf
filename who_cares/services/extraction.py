from __future__ import annotations

import asyncio
from typing import List

from ..core.config import get_settings
from .llm import chat_completion
from .llm_parsing import parse_entity_mentions
from .records import Company, RawEntityMention

NO_RESEARCH_PLACEHOLDER = "No external research available - use your knowledge."

EXTRACTION_PROMPT = """Extract ALL entities from this research about {name} ({exchange}: {ticker}).

RESEARCH:
{research}

Extract entities into categories:
- shareholder (with % if known)
- director (with role: Chairman, Non-Executive Director, etc.)
- executive (CEO, CFO, COO, Company Secretary)
- auditor
- broker
- advisor (legal, M&A, financial)
- competitor
- pe_firm (private equity)
- government (regulators: ACCC, ASIC, etc.)
- registry (share registry)
- lender
- supplier
- customer

Return ONLY a JSON array with no markdown formatting:
[{{"name": "Full Entity Name", "type": "category", "details": "specific details"}}]

IMPORTANT: Include the external auditor. Do not wrap response in code blocks."""


def build_extraction_prompt(company: Company, research: str = "") -> str:
    return EXTRACTION_PROMPT.format(
        name=company.name,
        exchange=company.exchange,
        ticker=company.ticker,
        research=research.strip() or NO_RESEARCH_PLACEHOLDER,
    )


async def extract_mentions(
    company: Company,
    research: str = "",
    *,
    client=None,
    timeout: float | None = None,
) -> List[RawEntityMention]:
    """
    Turn free research text (or nothing, for a knowledge-only query) into
    typed entity mentions with one LLM call.

    Raises ``UpstreamDegraded`` on a malformed response; SDK errors propagate.
    """
    prompt = build_extraction_prompt(company, research)
    raw = await asyncio.to_thread(
        chat_completion,
        prompt,
        temperature=0.1,
        max_tokens=4000,
        client=client,
        timeout=timeout if timeout is not None else get_settings().EXTRACTION_TIMEOUT_SECONDS,
    )
    return parse_entity_mentions(raw, company.ticker)
