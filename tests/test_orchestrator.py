"""
Tests for orchestrator.py - BatchPipeline end to end with fake collaborators
"""
import asyncio

from who_cares.services.connectors import ExtractionChain
from who_cares.services.entity_resolution import EntityCanonicalizer
from who_cares.services.narrative import NarrativeSummarizer
from who_cares.services.orchestrator import BatchPipeline, discover_batch
from who_cares.services.records import Company

from tests.fixtures.batch_fixtures import (
    FIVE_COMPANIES,
    MVF,
    NARRATIVE_RESPONSE,
    TER,
    FakeNarrativeService,
    FakeResolver,
    FakeStrategy,
    make_settings,
    mention,
)


def _pipeline(strategies, resolver=None, narrative=None) -> BatchPipeline:
    return BatchPipeline(
        chain=ExtractionChain(strategies, timeout=1),
        canonicalizer=EntityCanonicalizer(resolver, timeout=1),
        summarizer=NarrativeSummarizer(narrative, timeout=1),
    )


class TestDiscoverBatch:

    def test_shared_auditor_across_two_companies(self):
        """'BDO Australia' and 'BDO' collapse into one entity exposed to both."""
        strategy = FakeStrategy(
            "knowledge",
            {
                "MVF": [
                    mention("BDO Australia", "auditor", "MVF"),
                    mention("Jane Citizen", "director", "MVF"),
                ],
                "TER": [
                    mention("BDO", "auditor", "TER"),
                    mention("Macquarie Group Limited", "shareholder", "TER"),
                ],
            },
        )
        result = asyncio.run(_pipeline([strategy]).discover_batch([MVF, TER]))

        [entity] = result.who_cares
        assert entity.entity_name == "BDO"
        assert entity.exposed_companies == ("MVF", "TER")
        assert result.stats.total_companies == 2
        assert result.stats.total_relationships == 4
        assert result.stats.multi_exposure_entities == 1
        assert result.stats.search_mode == "knowledge"
        assert result.stats.degraded_companies == 0
        assert result.stats.processing_time_ms >= 0
        assert [c.ticker for c in result.companies] == ["MVF", "TER"]
        assert result.companies[1].relationships[1].entity_name == "Macquarie"

    def test_company_without_relationships(self):
        """A single company with nothing found yields an empty WHO CARES list."""
        result = asyncio.run(_pipeline([FakeStrategy("knowledge")]).discover_batch([MVF]))

        assert result.who_cares == ()
        assert result.stats.total_relationships == 0
        [company] = result.companies
        assert company.processing_status == "no_data"
        assert company.relationships == ()

    def test_degraded_company_counted_and_batch_completes(self):
        replies = {c.ticker: [mention("ASIC", "government", c.ticker)] for c in FIVE_COMPANIES}
        replies["HLS"] = RuntimeError("rate limited")
        result = asyncio.run(_pipeline([FakeStrategy("knowledge", replies)]).discover_batch(FIVE_COMPANIES))

        assert result.stats.degraded_companies == 1
        [entity] = result.who_cares
        assert entity.entity_name == "ASIC"
        assert entity.exposure_count == 4
        assert "HLS" not in entity.exposed_companies

    def test_duplicate_tickers_processed_once(self):
        strategy = FakeStrategy("knowledge")
        duplicate = Company(name="Terracom Limited", ticker="TER")
        result = asyncio.run(_pipeline([strategy]).discover_batch([TER, duplicate, MVF]))

        assert result.stats.total_companies == 2
        assert sorted(strategy.calls) == ["MVF", "TER"]

    def test_semantic_resolution_applied(self):
        strategy = FakeStrategy(
            "knowledge",
            {
                "MVF": [mention("Kate (Kathryn) McKenzie", "director", "MVF")],
                "TER": [mention("Kate McKenzie", "director", "TER")],
            },
        )
        resolver = FakeResolver({"Kate (Kathryn) McKenzie": "Kate McKenzie"})
        result = asyncio.run(_pipeline([strategy], resolver).discover_batch([MVF, TER]))

        [entity] = result.who_cares
        assert entity.entity_name == "Kate McKenzie"
        assert entity.entity_kind == "person"
        assert len(resolver.calls) == 1

    def test_module_level_entry_point(self):
        strategy = FakeStrategy("knowledge", {"MVF": [mention("BDO", "auditor", "MVF")]})
        result = asyncio.run(discover_batch([MVF], pipeline=_pipeline([strategy])))
        assert result.stats.total_relationships == 1


class TestPipelineWiring:

    def test_summarize_delegates(self):
        strategy = FakeStrategy(
            "knowledge",
            {"MVF": [mention("BDO", "auditor", "MVF")], "TER": [mention("BDO", "auditor", "TER")]},
        )
        pipeline = _pipeline([strategy], narrative=FakeNarrativeService(NARRATIVE_RESPONSE))
        result = asyncio.run(pipeline.discover_batch([MVF, TER]))
        summary = asyncio.run(pipeline.summarize(result.companies, result.who_cares))
        assert summary.generated_by == "llm"

    def test_from_settings_without_credentials(self):
        pipeline = BatchPipeline.from_settings(make_settings())
        assert pipeline.chain.strategy_names == []
        assert pipeline.canonicalizer.mode == "offline"
        assert pipeline.summarizer.service is None

        result = asyncio.run(pipeline.discover_batch([MVF, TER]))
        assert result.stats.search_mode == "none"
        assert all(c.processing_status == "no_data" for c in result.companies)
