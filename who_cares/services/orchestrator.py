from __future__ import annotations

import logging
import time
import uuid
from typing import List, Optional, Sequence

from ..core.config import Settings, get_settings
from .aggregation import aggregate, build_company_relationships, count_relationships
from .company_parser import merge_by_ticker
from .connectors import ExtractionChain, build_extraction_chain
from .entity_resolution import EntityCanonicalizer, build_semantic_resolver
from .narrative import NarrativeSummarizer, build_narrative_summarizer
from .records import (
    BatchResult,
    BatchStats,
    Company,
    CompanyRelationships,
    NarrativeSummary,
    WhoCaresEntity,
)
from .tracing import trace_batch_step

logger = logging.getLogger(__name__)


class BatchPipeline:
    """
    One batch, start to finish:

        extraction fan-out -> join -> canonicalisation -> relationship
        attachment -> aggregation -> stats

    Collaborators are injected so the HTTP layer builds a fresh pipeline per
    request and tests can substitute fakes.
    """

    def __init__(
        self,
        chain: ExtractionChain,
        canonicalizer: EntityCanonicalizer,
        summarizer: NarrativeSummarizer,
    ) -> None:
        self.chain = chain
        self.canonicalizer = canonicalizer
        self.summarizer = summarizer

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "BatchPipeline":
        settings = settings or get_settings()
        return cls(
            chain=build_extraction_chain(settings),
            canonicalizer=EntityCanonicalizer(
                build_semantic_resolver(settings),
                timeout=settings.RESOLUTION_TIMEOUT_SECONDS,
            ),
            summarizer=build_narrative_summarizer(settings),
        )

    async def discover_batch(
        self,
        companies: Sequence[Company],
        *,
        batch_id: Optional[str] = None,
    ) -> BatchResult:
        batch_id = batch_id or uuid.uuid4().hex
        started = time.perf_counter()
        batch = merge_by_ticker(companies)

        trace_batch_step(
            batch_id,
            phase="EXTRACTION",
            label="Extracting relationships",
            meta={"companies": len(batch), "chain": self.chain.mode},
        )
        outcomes = await self.chain.run_all(batch)

        names: List[str] = [m.name for o in outcomes for m in o.mentions]
        trace_batch_step(
            batch_id,
            phase="RESOLUTION",
            label="Canonicalising entity names",
            meta={"mentions": len(names), "mode": self.canonicalizer.mode},
        )
        canonical = await self.canonicalizer.canonicalize(names)

        with_relationships: List[CompanyRelationships] = [
            build_company_relationships(o.company, o.mentions, canonical, source=o.source)
            for o in outcomes
        ]

        trace_batch_step(batch_id, phase="AGGREGATION", label="Computing multi-exposure entities")
        who_cares = aggregate(with_relationships)

        stats = BatchStats(
            total_companies=len(batch),
            total_relationships=count_relationships(with_relationships),
            multi_exposure_entities=len(who_cares),
            processing_time_ms=int((time.perf_counter() - started) * 1000),
            search_mode=self.chain.mode,
            degraded_companies=sum(1 for o in outcomes if o.degraded),
        )
        trace_batch_step(
            batch_id,
            phase="DONE",
            label="Batch complete",
            meta={
                "relationships": stats.total_relationships,
                "who_cares": stats.multi_exposure_entities,
                "ms": stats.processing_time_ms,
            },
        )
        return BatchResult(
            companies=tuple(with_relationships),
            who_cares=tuple(who_cares),
            stats=stats,
        )

    async def summarize(
        self,
        companies: Sequence[CompanyRelationships],
        who_cares: Sequence[WhoCaresEntity],
    ) -> NarrativeSummary:
        return await self.summarizer.summarize(companies, who_cares)


async def discover_batch(
    companies: Sequence[Company],
    *,
    pipeline: BatchPipeline | None = None,
) -> BatchResult:
    pipeline = pipeline or BatchPipeline.from_settings()
    return await pipeline.discover_batch(companies)
