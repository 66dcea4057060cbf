"""
Tests for company_parser.py - Company normalisation

Covers the free-text line formats, stress-signal capture, the JSON signal
and row formats, ticker merging and the input error paths.
"""
import json

import pytest

from who_cares.services.company_parser import (
    lookup_ticker,
    merge_by_ticker,
    normalize,
    parse_companies,
)
from who_cares.services.errors import InputError, NoCompaniesFoundError
from who_cares.services.records import Company


class TestFreeTextFormats:
    """Line-oriented pasted input."""

    def test_exchange_colon_and_paren_ticker_lines(self):
        """Exchange:ticker and Name (TICKER) lines both parse, with stress signals."""
        companies = normalize("Monash IVF ASX:MVF -10.37%\nTerracom Ltd (TER) -26.67%")

        assert companies == [
            Company(name="Monash IVF", ticker="MVF", exchange="ASX", stress_signal="-10.37%"),
            Company(name="Terracom Ltd", ticker="TER", exchange="ASX", stress_signal="-26.67%"),
        ]

    def test_paren_with_exchange_prefix(self):
        """'Name (EXCHANGE: TICKER)' keeps the exchange."""
        [company] = normalize("Sonic Healthcare Ltd (NZX: SHL)")
        assert company.name == "Sonic Healthcare Ltd"
        assert company.ticker == "SHL"
        assert company.exchange == "NZX"
        assert company.stress_signal is None

    def test_ticker_first_line(self):
        """'TICKER Name pct' puts the leading code in ticker."""
        [company] = normalize("HLS Healius -4.5%")
        assert company.ticker == "HLS"
        assert company.name == "Healius"
        assert company.stress_signal == "-4.5%"

    def test_unicode_minus_normalised(self):
        """Unicode minus and en dash signs become ASCII '-'."""
        companies = normalize("Terracom (TER) −26.67%\nHealius (HLS) –3.1%")
        assert [c.stress_signal for c in companies] == ["-26.67%", "-3.1%"]

    def test_semicolon_separated(self):
        """';' separates companies like newlines do."""
        companies = normalize("Terracom (TER); Healius (HLS)")
        assert [c.ticker for c in companies] == ["TER", "HLS"]

    def test_embedded_mentions_in_prose(self):
        """Several Name (TICKER) mentions inside one sentence are all picked up."""
        text = "Shares in Healius (HLS) -5% and Sonic (SHL) -2% slid after the update"
        companies = normalize(text)
        assert [c.ticker for c in companies] == ["HLS", "SHL"]
        assert companies[0].stress_signal == "-5%"

    def test_known_name_without_ticker(self):
        """A bare name in the known-ticker table is accepted."""
        [company] = normalize("Monash IVF -12%")
        assert company.ticker == "MVF"
        assert company.stress_signal == "-12%"

    def test_unlisted_lines_excluded(self):
        """Unrecognised lines are reported as excluded, not parsed."""
        outcome = parse_companies("Terracom (TER)\nSome private company we like")
        assert [c.ticker for c in outcome.companies] == ["TER"]
        assert outcome.excluded == ["Some private company we like"]


class TestStructuredInput:
    """JSON text and pre-structured lists."""

    def test_signal_json_format(self):
        """Pre-processor signals: ticker from entity_ticker, stress from event fields."""
        signals = [
            {
                "entity_name": "Healius Limited",
                "entity_ticker": "hls",
                "event_type": "financial_distress",
                "summary": "Guidance withdrawn",
                "primary_pain_points": ["liquidity", "covenants"],
                "financial_impact_amount": 25_000_000,
            },
            {"entity_name": "Monash IVF Group", "event_type": "leadership_change"},
        ]
        companies = normalize(json.dumps(signals))

        assert [c.ticker for c in companies] == ["HLS", "MVF"]
        assert companies[0].name == "Healius"
        assert companies[0].stress_signal == (
            "Financial distress. Guidance withdrawn. Pain points: liquidity, covenants. "
            "Financial impact: $25.0M"
        )
        assert companies[1].stress_signal == "Leadership change"

    def test_row_dicts_and_records(self):
        """Dict rows and Company records are accepted together."""
        rows = [
            {"name": "Terracom", "ticker": "ter", "stress_signal": " -26% "},
            Company(name="Healius", ticker="hls", exchange="asx"),
        ]
        companies = normalize(rows)
        assert companies == [
            Company(name="Terracom", ticker="TER", exchange="ASX", stress_signal="-26%"),
            Company(name="Healius", ticker="HLS", exchange="ASX"),
        ]

    def test_invalid_json_raises_input_error(self):
        with pytest.raises(InputError, match="Invalid JSON"):
            normalize('[{"name": "oops"')


class TestMergingAndErrors:
    """Ticker dedup and failure modes."""

    def test_duplicate_ticker_merged_first_wins(self):
        """First name wins; a missing stress signal is filled from a later row."""
        companies = normalize("Terracom (TER)\nTerracom Limited (TER) -20%\nHealius (HLS)")
        assert [c.ticker for c in companies] == ["TER", "HLS"]
        assert companies[0].name == "Terracom"
        assert companies[0].stress_signal == "-20%"

    def test_merge_keeps_existing_stress(self):
        merged = merge_by_ticker(
            [
                Company(name="A", ticker="AAA", stress_signal="-1%"),
                Company(name="B", ticker="AAA", stress_signal="-9%"),
            ]
        )
        assert merged == [Company(name="A", ticker="AAA", stress_signal="-1%")]

    @pytest.mark.parametrize("raw", [None, "", "   ", []])
    def test_empty_input(self, raw):
        with pytest.raises(InputError):
            parse_companies(raw)

    def test_no_companies_found_message(self):
        """Readable input with zero companies carries the guidance message."""
        with pytest.raises(NoCompaniesFoundError) as exc:
            parse_companies("nothing to see here")
        assert str(exc.value) == "No companies found. Try including ticker codes like (TER) or (BBN)"
        assert isinstance(exc.value, InputError)

    def test_unrecognised_shape(self):
        with pytest.raises(InputError):
            parse_companies(42)

    def test_lookup_ticker_strips_suffix(self):
        assert lookup_ticker("Terracom Limited") == "TER"
        assert lookup_ticker("Unknown Pty") is None
