"""
Company normaliser.

Turns pasted free text, a JSON array of pre-processor signals, or an already
structured list into a deduplicated, ordered list of ``Company`` records.
Ticker is the batch join key: rows sharing a ticker are merged here, before
any extraction work starts.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from .errors import InputError, NoCompaniesFoundError
from .records import Company, ParseOutcome

logger = logging.getLogger(__name__)

DEFAULT_EXCHANGE = "ASX"

KNOWN_EXCHANGES = ("ASX", "NZX", "NYSE", "NASDAQ", "LSE", "TSX", "SGX", "HKEX")
_EXCHANGES = "|".join(KNOWN_EXCHANGES)

# Signed percentage, e.g. "-26.67%", "+3%", "−10.37 %"
_PCT_RE = re.compile(r"(?P<pct>[+\-−–]?\s?\d+(?:\.\d+)?\s?%)")

# "Terracom Ltd (TER) -26.67%" / "Terracom Ltd (ASX: TER)"
_PAREN_TICKER_RE = re.compile(
    r"^(?P<name>.+?)\s*\(\s*(?:(?P<exchange>[A-Z]{2,6})\s*:\s*)?"
    r"(?P<ticker>[A-Z0-9]{1,5})\s*\)(?P<rest>.*)$"
)

# "Monash IVF ASX:MVF -10.37%"
_EXCHANGE_TICKER_RE = re.compile(
    rf"^(?P<name>.+?)\s+(?P<exchange>{_EXCHANGES})\s*:\s*(?P<ticker>[A-Z0-9]{{1,5}})\b(?P<rest>.*)$"
)

# "TER Terracom -26.67%"
_TICKER_FIRST_RE = re.compile(
    r"^(?P<ticker>[A-Z0-9]{2,5})\s+(?P<name>[A-Z][A-Za-z0-9&.,'\- ]*?)"
    r"\s*(?P<rest>[+\-−–]?\s?\d.*)?$"
)

# Embedded mentions inside prose: "... shares in Terracom (TER) fell 26% ..."
_EMBEDDED_RE = re.compile(
    r"(?P<name>[A-Z][A-Za-z0-9&.'\-]*(?:\s+[A-Za-z0-9&.'\-]+)*?)\s*\((?P<ticker>[A-Z]{1,5})\)"
    r"(?:\s*(?P<pct>[+\-−–]?\s?\d+(?:\.\d+)?\s?%))?"
)

_NAME_SUFFIX_RE = re.compile(r"\s+(limited|ltd|pty|inc|corporation|corp)\.?$", re.IGNORECASE)

# Known ticker mappings for common Australian companies (bare-name lookup)
KNOWN_TICKERS: Dict[str, str] = {
    "australian securities exchange": "ASX",
    "asx limited": "ASX",
    "computershare": "CPU",
    "link administration": "LNK",
    "westpac": "WBC",
    "westpac banking corporation": "WBC",
    "commonwealth bank": "CBA",
    "commonwealth bank of australia": "CBA",
    "national australia bank": "NAB",
    "anz bank": "ANZ",
    "australia and new zealand banking group": "ANZ",
    "macquarie group": "MQG",
    "healius": "HLS",
    "sonic healthcare": "SHL",
    "ramsay health care": "RHC",
    "monash ivf": "MVF",
    "monash ivf group": "MVF",
    "australian clinical labs": "ACL",
    "integral diagnostics": "IDX",
    "woolworths": "WOW",
    "woolworths group": "WOW",
    "coles group": "COL",
    "wesfarmers": "WES",
    "bhp group": "BHP",
    "rio tinto": "RIO",
    "fortescue metals group": "FMG",
    "south32": "S32",
    "northern star": "NST",
    "pilbara minerals": "PLS",
    "mineral resources": "MIN",
    "liontown resources": "LTR",
    "telstra": "TLS",
    "tpg telecom": "TPG",
    "qbe insurance": "QBE",
    "insurance australia group": "IAG",
    "suncorp group": "SUN",
    "medibank private": "MPL",
    "nib holdings": "NHF",
    "goodman group": "GMG",
    "stockland": "SGP",
    "mirvac group": "MGR",
    "dexus": "DXS",
    "scentre group": "SCG",
    "charter hall group": "CHC",
    "wisetech global": "WTC",
    "rea group": "REA",
    "technology one": "TNE",
    "pro medicus": "PME",
    "qantas airways": "QAN",
    "brambles": "BXB",
    "transurban group": "TCL",
    "aurizon holdings": "AZJ",
    "woodside energy": "WDS",
    "santos": "STO",
    "origin energy": "ORG",
    "agl energy": "AGL",
    "aristocrat leisure": "ALL",
    "cochlear": "COH",
    "csl limited": "CSL",
    "james hardie industries": "JHX",
    "orica": "ORI",
    "bluescope steel": "BSL",
    "terracom": "TER",
}

EVENT_TYPE_LABELS: Dict[str, str] = {
    "regulatory_penalty": "Regulatory penalty",
    "new_funding_investment": "New funding/investment",
    "financial_distress": "Financial distress",
    "ipo_listing": "IPO/Listing",
    "restructure_reorganisation": "Restructure/reorganisation",
    "leadership_change": "Leadership change",
    "merger_acquisition": "M&A activity",
    "compliance_breach": "Compliance breach",
    "strategic_review": "Strategic review",
}


def _normalize_pct(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    cleaned = raw.replace(" ", "").replace("−", "-").replace("–", "-")
    return cleaned or None


def _stress_from(rest: Optional[str]) -> Optional[str]:
    if not rest:
        return None
    match = _PCT_RE.search(rest)
    return _normalize_pct(match.group("pct")) if match else None


def _clean_name(name: str) -> str:
    return re.sub(r"\s+", " ", name).strip(" \t-–:,;")


def _clean_company_name(name: str) -> str:
    """Drop a trailing legal suffix (used for pre-processor signal names)."""
    return _clean_name(_NAME_SUFFIX_RE.sub("", name.strip()))


def lookup_ticker(name: str) -> Optional[str]:
    key = _clean_name(name).lower()
    if key in KNOWN_TICKERS:
        return KNOWN_TICKERS[key]
    key = _clean_company_name(name).lower()
    return KNOWN_TICKERS.get(key)


def _format_event_type(event_type: str) -> str:
    return EVENT_TYPE_LABELS.get(event_type, event_type.replace("_", " "))


# ---------------------------------------------------------------------------
# Free text
# ---------------------------------------------------------------------------

def _parse_line(line: str, outcome: ParseOutcome) -> None:
    embedded = list(_EMBEDDED_RE.finditer(line))
    if len(embedded) > 1:
        for m in embedded:
            outcome.companies.append(
                Company(
                    name=_clean_name(m.group("name")),
                    ticker=m.group("ticker").upper(),
                    exchange=DEFAULT_EXCHANGE,
                    stress_signal=_normalize_pct(m.group("pct")),
                )
            )
        return

    m = _PAREN_TICKER_RE.match(line)
    if m:
        outcome.companies.append(
            Company(
                name=_clean_name(m.group("name")),
                ticker=m.group("ticker").upper(),
                exchange=(m.group("exchange") or DEFAULT_EXCHANGE).upper(),
                stress_signal=_stress_from(m.group("rest")),
            )
        )
        return

    m = _EXCHANGE_TICKER_RE.match(line)
    if m:
        outcome.companies.append(
            Company(
                name=_clean_name(m.group("name")),
                ticker=m.group("ticker").upper(),
                exchange=m.group("exchange").upper(),
                stress_signal=_stress_from(m.group("rest")),
            )
        )
        return

    bare = _clean_name(_PCT_RE.sub("", line))
    ticker = lookup_ticker(bare)
    if ticker:
        outcome.companies.append(
            Company(
                name=bare,
                ticker=ticker,
                exchange=DEFAULT_EXCHANGE,
                stress_signal=_stress_from(line),
            )
        )
        return

    m = _TICKER_FIRST_RE.match(line)
    if m and any(ch.isalpha() for ch in m.group("ticker")):
        outcome.companies.append(
            Company(
                name=_clean_name(m.group("name")),
                ticker=m.group("ticker").upper(),
                exchange=DEFAULT_EXCHANGE,
                stress_signal=_stress_from(m.group("rest")),
            )
        )
        return

    if embedded:
        m = embedded[0]
        outcome.companies.append(
            Company(
                name=_clean_name(m.group("name")),
                ticker=m.group("ticker").upper(),
                exchange=DEFAULT_EXCHANGE,
                stress_signal=_normalize_pct(m.group("pct")),
            )
        )
        return

    if bare:
        outcome.excluded.append(bare)


def _parse_text(text: str) -> ParseOutcome:
    outcome = ParseOutcome()
    for chunk in re.split(r"[\r\n;]+", text):
        line = chunk.strip()
        if line:
            _parse_line(line, outcome)
    return outcome


# ---------------------------------------------------------------------------
# Structured / JSON input
# ---------------------------------------------------------------------------

def _company_from_signal(signal: Dict[str, Any], outcome: ParseOutcome) -> None:
    entity_name = str(signal.get("entity_name") or "").strip()
    if not entity_name:
        return

    provided = str(signal.get("entity_ticker") or "").strip()
    ticker = provided.upper() if provided else lookup_ticker(entity_name)
    name = _clean_company_name(entity_name)
    if not ticker:
        outcome.excluded.append(name)
        return

    parts: List[str] = []
    event_type = signal.get("event_type")
    if isinstance(event_type, str) and event_type:
        parts.append(_format_event_type(event_type))
    summary = signal.get("summary")
    if isinstance(summary, str) and summary.strip():
        parts.append(summary.strip())
    pain_points = signal.get("primary_pain_points")
    if isinstance(pain_points, list) and pain_points:
        parts.append("Pain points: " + ", ".join(str(p) for p in pain_points))
    impact = signal.get("financial_impact_amount")
    if isinstance(impact, (int, float)) and impact:
        parts.append(f"Financial impact: ${impact / 1_000_000:.1f}M")

    outcome.companies.append(
        Company(
            name=name,
            ticker=ticker,
            exchange=DEFAULT_EXCHANGE,
            stress_signal=". ".join(parts) or None,
        )
    )


def _company_from_row(row: Any, outcome: ParseOutcome) -> None:
    if isinstance(row, Company):
        outcome.companies.append(
            Company(
                name=row.name.strip(),
                ticker=row.ticker.strip().upper(),
                exchange=(row.exchange or DEFAULT_EXCHANGE).upper(),
                stress_signal=row.stress_signal,
            )
        )
        return

    if not isinstance(row, dict):
        raise InputError(f"Unrecognised company row: {type(row).__name__}")

    if "entity_name" in row:
        _company_from_signal(row, outcome)
        return

    name = str(row.get("name") or "").strip()
    ticker = str(row.get("ticker") or "").strip().upper()
    if not name and not ticker:
        return
    if not ticker:
        ticker = lookup_ticker(name) or ""
    if not ticker:
        outcome.excluded.append(name)
        return

    stress = row.get("stress_signal")
    outcome.companies.append(
        Company(
            name=name or ticker,
            ticker=ticker,
            exchange=str(row.get("exchange") or DEFAULT_EXCHANGE).strip().upper(),
            stress_signal=str(stress).strip() if stress else None,
        )
    )


def _parse_rows(rows: Iterable[Any]) -> ParseOutcome:
    outcome = ParseOutcome()
    for row in rows:
        _company_from_row(row, outcome)
    return outcome


def _parse_json_text(text: str) -> ParseOutcome:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InputError(f"Invalid JSON format: {e.msg}") from e

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise InputError("JSON input must be an array of companies or signals")
    return _parse_rows(data)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def merge_by_ticker(companies: Iterable[Company]) -> List[Company]:
    """
    Collapse rows sharing a ticker, preserving first-seen order.

    The first row's name and exchange win; a missing stress signal is filled
    from the first later row that has one.
    """
    merged: Dict[str, Company] = {}
    for company in companies:
        existing = merged.get(company.ticker)
        if existing is None:
            merged[company.ticker] = company
        elif existing.stress_signal is None and company.stress_signal:
            merged[company.ticker] = Company(
                name=existing.name,
                ticker=existing.ticker,
                exchange=existing.exchange,
                stress_signal=company.stress_signal,
            )
    return list(merged.values())


def parse_companies(raw_input: Any) -> ParseOutcome:
    """
    Parse raw input into companies plus the names excluded as unlisted.

    Raises:
        InputError: empty input or an unrecognisable shape.
        NoCompaniesFoundError: readable input that yields zero companies.
    """
    if raw_input is None:
        raise InputError("Input is empty")

    if isinstance(raw_input, str):
        text = raw_input.strip()
        if not text:
            raise InputError("Input is empty")
        if text.startswith("[") or text.startswith("{"):
            outcome = _parse_json_text(text)
        else:
            outcome = _parse_text(text)
    elif isinstance(raw_input, (list, tuple)):
        if not raw_input:
            raise InputError("Input is empty")
        outcome = _parse_rows(raw_input)
    else:
        raise InputError(f"Unrecognised input shape: {type(raw_input).__name__}")

    outcome.companies = merge_by_ticker(c for c in outcome.companies if c.ticker)

    if outcome.excluded:
        logger.info(
            "Excluded %d unlisted/unrecognised entries: %s",
            len(outcome.excluded),
            outcome.excluded,
            extra={"step": "parse_companies"},
        )

    if not outcome.companies:
        raise NoCompaniesFoundError()

    return outcome


def normalize(raw_input: Any) -> List[Company]:
    return parse_companies(raw_input).companies
