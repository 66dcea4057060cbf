from __future__ import annotations

import asyncio
import logging
from typing import List, Tuple

from .base import BaseExtractionStrategy
from ..extraction import extract_mentions
from ..llm import chat_completion, get_research_client, has_llm_credentials
from ..records import Company, RawEntityMention
from ...core.config import Settings, get_settings

logger = logging.getLogger(__name__)

RESEARCH_SYSTEM_PROMPT = (
    "You are a financial research assistant. Provide accurate, specific information "
    "about listed companies including names, percentages, and roles. "
    "Always include the external auditor."
)

# Asked concurrently; answers are concatenated in this order.
RESEARCH_QUESTIONS: Tuple[str, ...] = (
    "Who are the top 10 substantial shareholders of {name} ({exchange}: {ticker})? "
    "Include percentage holdings.",
    "Who are all board directors and executives of {name} ({exchange}: {ticker})? "
    "Include Chairman, CEO, CFO, all non-executive directors with roles.",
    "Who is the external auditor for {name} ({exchange}: {ticker})? Also list legal "
    "advisors, M&A advisors, corporate brokers, and share registry.",
    "Who are the main {exchange}-listed competitors of {name} ({ticker})? Also list any "
    "private equity firms interested in this sector.",
)


def build_research_questions(company: Company) -> List[str]:
    return [
        q.format(name=company.name, exchange=company.exchange, ticker=company.ticker)
        for q in RESEARCH_QUESTIONS
    ]


class WebResearchStrategy(BaseExtractionStrategy):
    """
    Web-grounded research model (Perplexity ``sonar`` by default) answers four
    relationship questions; the combined answers are then run through LLM
    entity extraction.

    A failed question is logged and skipped; the remaining answers are still
    used.
    """

    name = "web_research"

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        research_client=None,
        llm_client=None,
    ) -> None:
        self._settings = settings or get_settings()
        self._research_client = research_client
        self._llm_client = llm_client

    def is_configured(self) -> bool:
        return bool(self._settings.PERPLEXITY_API_KEY) and has_llm_credentials(self._settings)

    async def _ask(self, question: str) -> str:
        client = self._research_client or get_research_client()
        return await asyncio.to_thread(
            chat_completion,
            question,
            system_prompt=RESEARCH_SYSTEM_PROMPT,
            max_tokens=1500,
            client=client,
            model=self._settings.PERPLEXITY_MODEL,
            timeout=self._settings.EXTRACTION_TIMEOUT_SECONDS,
        )

    async def research(self, company: Company) -> str:
        questions = build_research_questions(company)
        answers = await asyncio.gather(
            *(self._ask(q) for q in questions),
            return_exceptions=True,
        )

        parts: List[str] = []
        for idx, answer in enumerate(answers):
            if isinstance(answer, Exception):
                logger.warning(
                    "Research question %d failed: %s",
                    idx + 1,
                    answer,
                    extra={"ticker": company.ticker, "strategy": self.name},
                )
                continue
            if answer:
                parts.append(answer)
        return "\n\n".join(parts)

    async def extract(self, company: Company) -> List[RawEntityMention]:
        research = await self.research(company)
        if not research.strip():
            logger.info(
                "No research text returned",
                extra={"ticker": company.ticker, "strategy": self.name},
            )
            return []
        return await extract_mentions(
            company, research, client=self._llm_client, timeout=self._settings.EXTRACTION_TIMEOUT_SECONDS
        )
