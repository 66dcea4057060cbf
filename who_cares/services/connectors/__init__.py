from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .base import BaseExtractionStrategy
from .knowledge import KnowledgeStrategy
from .search_fetch import SearchFetchStrategy
from .web_research import WebResearchStrategy
from ..errors import UpstreamDegraded
from ..records import Company, RawEntityMention
from ...core.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractionOutcome:
    company: Company
    mentions: Tuple[RawEntityMention, ...] = ()
    source: Optional[str] = None
    # At least one strategy errored or timed out for this company.
    degraded: bool = False


class ExtractionChain:
    """
    Ordered fallback over extraction strategies.

    - Built once per batch; the same strategy order serves every company.
    - For each company, strategies run in order until one returns a
      non-empty result.
    - Every strategy call is bounded by ``timeout``; errors and timeouts are
      logged and treated as an empty result.
    """

    def __init__(
        self,
        strategies: Sequence[BaseExtractionStrategy],
        *,
        timeout: float | None = None,
    ) -> None:
        self._strategies: Tuple[BaseExtractionStrategy, ...] = tuple(strategies)
        self.timeout = timeout if timeout is not None else get_settings().EXTRACTION_TIMEOUT_SECONDS

    @property
    def strategy_names(self) -> List[str]:
        return [s.name for s in self._strategies]

    @property
    def mode(self) -> str:
        """Short label of the active chain, e.g. ``web_research+knowledge``."""
        return "+".join(self.strategy_names) or "none"

    async def _attempt(
        self, strategy: BaseExtractionStrategy, company: Company
    ) -> Tuple[List[RawEntityMention], bool]:
        log_extra = {"ticker": company.ticker, "strategy": strategy.name}
        try:
            mentions = await asyncio.wait_for(strategy.extract(company), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Extraction timed out after %.1fs",
                self.timeout,
                extra=log_extra,
            )
            return [], True
        except UpstreamDegraded as e:
            logger.warning("Extraction response unusable: %s", e, extra=log_extra)
            return [], True
        except Exception as e:
            logger.exception("Extraction failed: %s", e, extra=log_extra)
            return [], True
        return list(mentions or []), False

    async def run(self, company: Company) -> ExtractionOutcome:
        degraded = False
        for strategy in self._strategies:
            mentions, failed = await self._attempt(strategy, company)
            degraded = degraded or failed
            if mentions:
                logger.info(
                    "Extracted %d mentions",
                    len(mentions),
                    extra={"ticker": company.ticker, "strategy": strategy.name},
                )
                return ExtractionOutcome(
                    company=company,
                    mentions=tuple(mentions),
                    source=strategy.name,
                    degraded=degraded,
                )
        return ExtractionOutcome(company=company, degraded=degraded)

    async def extract(self, company: Company) -> List[RawEntityMention]:
        """Mentions for one company; ``[]`` when every strategy came up empty."""
        outcome = await self.run(company)
        return list(outcome.mentions)

    async def run_all(self, companies: Sequence[Company]) -> List[ExtractionOutcome]:
        """Extract for every company concurrently; results keep input order."""
        tasks = [asyncio.create_task(self.run(c)) for c in companies]
        return list(await asyncio.gather(*tasks))


def build_extraction_chain(settings: Settings | None = None) -> ExtractionChain:
    """
    Strategies in fixed priority order, most capable first, keeping only the
    ones whose credentials are configured.
    """
    settings = settings or get_settings()
    candidates: List[BaseExtractionStrategy] = [
        SearchFetchStrategy(settings),
        WebResearchStrategy(settings),
        KnowledgeStrategy(settings),
    ]
    active = [s for s in candidates if s.is_configured()]
    logger.info(
        "Extraction chain: %s",
        "+".join(s.name for s in active) or "none",
        extra={"step": "build_extraction_chain"},
    )
    return ExtractionChain(active, timeout=settings.EXTRACTION_TIMEOUT_SECONDS)


__all__ = [
    "BaseExtractionStrategy",
    "ExtractionChain",
    "ExtractionOutcome",
    "KnowledgeStrategy",
    "SearchFetchStrategy",
    "WebResearchStrategy",
    "build_extraction_chain",
]
