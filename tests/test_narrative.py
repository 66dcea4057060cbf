"""
Tests for narrative.py - Batch narrative summaries

LLM path, template fallback and the empty-batch short circuit.
"""
import asyncio

import pytest

from who_cares.services.aggregation import aggregate
from who_cares.services.errors import UpstreamDegraded
from who_cares.services.narrative import (
    LLMNarrativeService,
    NarrativeSummarizer,
    build_narrative_prompt,
    build_narrative_summarizer,
    template_summary,
)
from who_cares.services.records import NarrativeSummary

from tests.fixtures.batch_fixtures import (
    HLS,
    MVF,
    NARRATIVE_RESPONSE,
    SHL,
    TER,
    FakeChatClient,
    FakeNarrativeService,
    company_with,
    make_settings,
)

COMPANIES = [
    company_with(MVF, ("BDO", "auditor"), ("Macquarie", "shareholder"), ("Allens", "advisor")),
    company_with(TER, ("BDO", "auditor"), ("Macquarie", "shareholder"), ("Allens", "advisor")),
    company_with(HLS, ("BDO", "auditor"), ("ASIC", "government")),
    company_with(SHL, ("ASIC", "government"), ("Perpetual", "shareholder")),
]
WHO_CARES = aggregate(COMPANIES)


class TestNarrativeSummarizer:

    def test_empty_who_cares_skips_service(self):
        service = FakeNarrativeService(NARRATIVE_RESPONSE)
        summary = asyncio.run(NarrativeSummarizer(service, timeout=1).summarize(COMPANIES, []))

        assert summary.generated_by == "empty"
        assert summary.headline == "No multi-exposure entities found"
        assert service.prompts == []

    def test_llm_summary(self):
        service = FakeNarrativeService(NARRATIVE_RESPONSE)
        summary = asyncio.run(NarrativeSummarizer(service, timeout=1).summarize(COMPANIES, WHO_CARES))

        assert summary.generated_by == "llm"
        assert summary.headline == "BDO audits two stressed healthcare names"
        assert len(summary.key_findings) == 3
        assert summary.suggested_approaches[0].advisory_type == "Restructuring"
        assert summary.disclaimer == "Illustrative only."
        assert len(service.prompts) == 1

    def test_blank_disclaimer_gets_default(self):
        service = FakeNarrativeService('{"headline": "BDO everywhere", "disclaimer": " "}')
        summary = asyncio.run(NarrativeSummarizer(service, timeout=1).summarize(COMPANIES, WHO_CARES))
        assert summary.disclaimer == NarrativeSummary(headline="x").disclaimer
        assert summary.key_findings == ()

    @pytest.mark.parametrize(
        "service",
        [
            FakeNarrativeService(error=RuntimeError("quota")),
            FakeNarrativeService(error=UpstreamDegraded("bad")),
            FakeNarrativeService("not json at all"),
            FakeNarrativeService(NARRATIVE_RESPONSE, delay=0.5),
        ],
        ids=["error", "degraded", "unusable", "timeout"],
    )
    def test_failures_fall_back_to_template(self, service):
        summary = asyncio.run(NarrativeSummarizer(service, timeout=0.05).summarize(COMPANIES, WHO_CARES))
        assert summary == template_summary(COMPANIES, WHO_CARES)

    def test_no_service_uses_template(self):
        summary = asyncio.run(NarrativeSummarizer(None, timeout=1).summarize(COMPANIES, WHO_CARES))
        assert summary.generated_by == "template"


class TestTemplateSummary:

    def test_headline_and_findings(self):
        summary = template_summary(COMPANIES, WHO_CARES)

        assert summary.headline == "BDO is exposed to 3 of 4 stressed companies"
        assert summary.key_findings[0] == "BDO (auditor) is connected to MVF, TER, HLS."
        assert len(summary.key_findings) == 3
        assert summary.key_findings[-1].endswith("1 more multi-exposure entities found.")
        assert [a.target for a in summary.suggested_approaches] == ["BDO", "Macquarie", "Allens"]
        assert summary.suggested_approaches[0].advisory_type == "Audit and restructuring advisory"


    def test_unsorted_entities_ranked_first(self):
        """The headline names the most-exposed entity even when the list arrives out of order."""
        reordered = [WHO_CARES[3], WHO_CARES[1], WHO_CARES[0], WHO_CARES[2]]
        summary = template_summary(COMPANIES, reordered)

        assert summary.headline == "BDO is exposed to 3 of 4 stressed companies"
        assert [a.target for a in summary.suggested_approaches] == ["BDO", "ASIC", "Macquarie"]
        assert summary.key_findings[-1].endswith("1 more multi-exposure entities found.")

    def test_summarizer_fallback_ranks_unsorted_input(self):
        reordered = list(reversed(WHO_CARES))
        summary = asyncio.run(NarrativeSummarizer(None, timeout=1).summarize(COMPANIES, reordered))
        assert summary.headline.startswith("BDO is exposed to 3")


class TestPromptAndBuilder:

    def test_prompt_lists_companies_and_entities(self):
        prompt = build_narrative_prompt(COMPANIES, WHO_CARES)
        assert "- Monash IVF (ASX: MVF) stress: -10.37%" in prompt
        assert "- BDO [firm, auditor] exposed to 3: MVF, TER, HLS" in prompt

    def test_llm_service_uses_client(self):
        client = FakeChatClient(NARRATIVE_RESPONSE)
        raw = asyncio.run(LLMNarrativeService(client=client, model="m", timeout=4.0).generate("hello"))
        assert raw == NARRATIVE_RESPONSE
        assert client.calls[0]["model"] == "m"
        assert client.calls[0]["timeout"] == 4.0

    def test_prompt_lists_entities_by_rank(self):
        prompt = build_narrative_prompt(COMPANIES, list(reversed(WHO_CARES)))
        assert prompt.index("- BDO [") < prompt.index("- ASIC [")

    def test_builder(self):
        assert build_narrative_summarizer(make_settings()).service is None
        assert isinstance(
            build_narrative_summarizer(make_settings(OPENAI_API_KEY="sk")).service,
            LLMNarrativeService,
        )
