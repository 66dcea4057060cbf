from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional, Tuple

EntityKind = Literal["person", "firm", "company", "government"]
ProcessingStatus = Literal["completed", "no_data"]

# Category vocabulary -> entity kind. Anything not listed is treated as a firm.
CATEGORY_KINDS: dict[str, EntityKind] = {
    "shareholder": "company",
    "director": "person",
    "executive": "person",
    "chairman": "person",
    "ceo": "person",
    "cfo": "person",
    "coo": "person",
    "company_secretary": "person",
    "auditor": "firm",
    "broker": "firm",
    "advisor": "firm",
    "lender": "firm",
    "registry": "firm",
    "government": "government",
    "regulator": "government",
    "competitor": "company",
    "industry_peer": "company",
    "pe_firm": "company",
    "supplier": "company",
    "customer": "company",
}

RELATIONSHIP_CATEGORIES: tuple[str, ...] = (
    "shareholder",
    "director",
    "executive",
    "auditor",
    "broker",
    "advisor",
    "competitor",
    "pe_firm",
    "lender",
    "government",
    "registry",
    "supplier",
    "customer",
)


def normalize_category(value: str | None) -> str:
    """Lower-case a category label and fold spaces/hyphens to underscores."""
    if not value:
        return "other"
    cleaned = "_".join(value.strip().lower().replace("-", " ").split())
    return cleaned or "other"


def entity_kind_for(category: str | None) -> EntityKind:
    return CATEGORY_KINDS.get(normalize_category(category), "firm")


@dataclass(frozen=True)
class Company:
    name: str
    ticker: str
    exchange: str = "ASX"
    stress_signal: Optional[str] = None


@dataclass(frozen=True)
class RawEntityMention:
    """
    A single entity as emitted by an extraction backend, before canonicalisation.

    ``name`` keeps whatever casing and suffixes the backend produced.
    """

    name: str
    type: str
    details: str
    source_ticker: str


@dataclass(frozen=True)
class Relationship:
    entity_name: str
    entity_kind: EntityKind
    category: str
    details: str = ""


@dataclass(frozen=True)
class CompanyRelationships:
    """A batch company plus the canonical relationships discovered for it."""

    company: Company
    relationships: Tuple[Relationship, ...] = ()
    processing_status: ProcessingStatus = "completed"
    discovery_source: Optional[str] = None

    # Flattened accessors so the HTTP schema can read this as one flat object.
    @property
    def name(self) -> str:
        return self.company.name

    @property
    def ticker(self) -> str:
        return self.company.ticker

    @property
    def exchange(self) -> str:
        return self.company.exchange

    @property
    def stress_signal(self) -> Optional[str]:
        return self.company.stress_signal


@dataclass(frozen=True)
class ExposureDetail:
    ticker: str
    relationship_category: str


@dataclass(frozen=True)
class WhoCaresEntity:
    entity_name: str
    entity_kind: EntityKind
    primary_category: str
    exposure_count: int
    exposed_companies: Tuple[str, ...]
    exposure_details: Tuple[ExposureDetail, ...]


@dataclass(frozen=True)
class BatchStats:
    total_companies: int
    total_relationships: int
    multi_exposure_entities: int
    processing_time_ms: int
    search_mode: str = "none"
    degraded_companies: int = 0


@dataclass(frozen=True)
class BatchResult:
    companies: Tuple[CompanyRelationships, ...]
    who_cares: Tuple[WhoCaresEntity, ...]
    stats: BatchStats


@dataclass(frozen=True)
class SuggestedApproach:
    target: str
    angle: str
    advisory_type: str


@dataclass(frozen=True)
class NarrativeSummary:
    headline: str
    key_findings: Tuple[str, ...] = ()
    suggested_approaches: Tuple[SuggestedApproach, ...] = ()
    disclaimer: str = (
        "Relationships are compiled from public sources and AI research; "
        "verify before outreach."
    )
    generated_by: Literal["llm", "template", "empty"] = "template"


@dataclass
class ParseOutcome:
    """Companies accepted by the normaliser plus names dropped as unlisted."""

    companies: list[Company] = field(default_factory=list)
    excluded: list[str] = field(default_factory=list)
