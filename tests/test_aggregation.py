"""
Tests for aggregation.py - Multi-exposure aggregation

Threshold, invariants, first-encountered category policy, stable ordering
and relationship attachment.
"""
import random

import pytest

from who_cares.services.aggregation import aggregate, build_company_relationships
from who_cares.services.entity_resolution import canonicalize_offline
from who_cares.services.errors import AggregationPreconditionError
from who_cares.services.records import Company, CompanyRelationships, ExposureDetail

from tests.fixtures.batch_fixtures import ACL, HLS, MVF, SHL, TER, company_with, mention


class TestAggregate:
    """Core aggregation semantics."""

    def test_auditor_variants_merge_across_two_companies(self):
        """'BDO Australia' at MVF and 'BDO' at TER become one entity exposed to both."""
        mvf_mentions = [mention("BDO Australia", "auditor", "MVF")]
        ter_mentions = [mention("BDO", "auditor", "TER")]
        canonical = canonicalize_offline(m.name for m in mvf_mentions + ter_mentions)

        companies = [
            build_company_relationships(MVF, mvf_mentions, canonical),
            build_company_relationships(TER, ter_mentions, canonical),
        ]
        [entity] = aggregate(companies)

        assert entity.entity_name == "BDO"
        assert entity.entity_kind == "firm"
        assert entity.exposure_count == 2
        assert entity.exposed_companies == ("MVF", "TER")

    def test_primary_category_first_encountered(self):
        """Representative category is the first seen; details keep each company's own."""
        companies = [
            company_with(MVF, ("Jane Citizen", "shareholder")),
            company_with(TER, ("Jane Citizen", "director")),
            company_with(HLS, ("Jane Citizen", "shareholder")),
        ]
        [entity] = aggregate(companies)

        assert entity.primary_category == "shareholder"
        assert entity.entity_kind == "company"
        assert entity.exposure_details == (
            ExposureDetail("MVF", "shareholder"),
            ExposureDetail("TER", "director"),
            ExposureDetail("HLS", "shareholder"),
        )

    def test_per_company_detail_uses_its_first_category(self):
        companies = [
            company_with(MVF, ("Macquarie", "broker"), ("Macquarie", "shareholder")),
            company_with(TER, ("Macquarie", "lender")),
        ]
        [entity] = aggregate(companies)
        assert entity.exposure_count == 2
        assert [d.relationship_category for d in entity.exposure_details] == ["broker", "lender"]

    def test_single_exposure_filtered_out(self):
        companies = [
            company_with(MVF, ("KPMG", "auditor"), ("BDO", "auditor")),
            company_with(TER, ("BDO", "auditor")),
        ]
        assert [e.entity_name for e in aggregate(companies)] == ["BDO"]

    def test_sorted_descending_with_stable_ties(self):
        companies = [
            company_with(MVF, ("Alpha", "advisor"), ("Beta", "advisor"), ("Gamma", "advisor")),
            company_with(TER, ("Alpha", "advisor"), ("Beta", "advisor"), ("Gamma", "advisor")),
            company_with(HLS, ("Gamma", "advisor")),
        ]
        result = aggregate(companies)
        assert [(e.entity_name, e.exposure_count) for e in result] == [
            ("Gamma", 3),
            ("Alpha", 2),
            ("Beta", 2),
        ]

    def test_empty_inputs(self):
        assert aggregate([]) == []
        assert aggregate([company_with(MVF)]) == []

    def test_missing_ticker_is_precondition_error(self):
        broken = CompanyRelationships(company=Company(name="No Ticker", ticker=" "))
        with pytest.raises(AggregationPreconditionError):
            aggregate([company_with(MVF), broken])


ENTITY_POOL = ["BDO", "KPMG", "Macquarie", "Jane Citizen", "ASIC", "Vanguard", "Perpetual", "Allens"]
CATEGORY_POOL = ["auditor", "shareholder", "director", "advisor", "government", "lender"]


def _random_batch(rng: random.Random) -> list:
    companies = []
    for company in [MVF, TER, HLS, SHL, ACL][: rng.randint(0, 5)]:
        rels = [
            (rng.choice(ENTITY_POOL), rng.choice(CATEGORY_POOL))
            for _ in range(rng.randint(0, 6))
        ]
        companies.append(company_with(company, *rels))
    return companies


class TestAggregateProperties:
    """Threshold, invariant and determinism over seeded random batches."""

    @pytest.mark.parametrize("seed", range(30))
    def test_threshold(self, seed):
        companies = _random_batch(random.Random(seed))
        result = {e.entity_name for e in aggregate(companies)}

        for name in ENTITY_POOL:
            tickers = {c.ticker for c in companies for r in c.relationships if r.entity_name == name}
            assert (name in result) == (len(tickers) >= 2)

    @pytest.mark.parametrize("seed", range(30))
    def test_invariant(self, seed):
        for entity in aggregate(_random_batch(random.Random(100 + seed))):
            assert entity.exposure_count == len(entity.exposed_companies) == len(entity.exposure_details)
            assert len(set(entity.exposed_companies)) == len(entity.exposed_companies)
            assert [d.ticker for d in entity.exposure_details] == list(entity.exposed_companies)

    @pytest.mark.parametrize("seed", range(30))
    def test_deterministic(self, seed):
        companies = _random_batch(random.Random(200 + seed))
        assert repr(aggregate(companies)) == repr(aggregate(companies))


class TestBuildCompanyRelationships:
    """Attaching canonical names to one company's mentions."""

    def test_dedup_and_order(self):
        mentions = [
            mention("BDO Australia", "auditor", "MVF", "External auditor"),
            mention("Jane Citizen", "Director", "MVF"),
            mention("BDO", "auditor", "MVF", "duplicate"),
            mention("BDO", "advisor", "MVF"),
        ]
        canonical = canonicalize_offline(m.name for m in mentions)
        result = build_company_relationships(MVF, mentions, canonical, source="knowledge")

        assert [(r.entity_name, r.category, r.entity_kind) for r in result.relationships] == [
            ("BDO", "auditor", "firm"),
            ("Jane Citizen", "director", "person"),
            ("BDO", "advisor", "firm"),
        ]
        assert result.relationships[0].details == "External auditor"
        assert result.processing_status == "completed"
        assert result.discovery_source == "knowledge"

    def test_no_mentions_is_no_data(self):
        result = build_company_relationships(TER, [], {}, source="knowledge")
        assert result.relationships == ()
        assert result.processing_status == "no_data"
        assert result.discovery_source is None
        assert result.ticker == "TER"

    def test_unknown_category_defaults_to_firm(self):
        result = build_company_relationships(TER, [mention("Widget Co", "Joint Venture", "TER")], {})
        [rel] = result.relationships
        assert rel.category == "joint_venture"
        assert rel.entity_kind == "firm"
