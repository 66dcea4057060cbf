from typing import List, Literal

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from ..services.records import (
    Company,
    CompanyRelationships,
    ExposureDetail,
    Relationship,
    WhoCaresEntity,
    entity_kind_for,
    normalize_category,
)

MAX_BATCH_COMPANIES = 50
MAX_TEXT_LEN = 20000
MAX_NAME_LEN = 200

EntityKindField = Literal["person", "firm", "company", "government"]


def _strip_or_none(v):
    if v is None:
        return None
    if isinstance(v, str):
        return v.strip() or None
    return v


# ---------------------------------------------------------------------------
# Companies
# ---------------------------------------------------------------------------


class CompanyIn(BaseModel):
    name: str
    ticker: str
    exchange: str = "ASX"
    stress_signal: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = " ".join(v.split())
        if not v:
            raise ValueError("name must not be empty")
        if len(v) > MAX_NAME_LEN:
            raise ValueError(f"name must be at most {MAX_NAME_LEN} characters")
        return v

    @field_validator("ticker")
    @classmethod
    def validate_ticker(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("ticker must not be empty")
        return v

    @field_validator("exchange", mode="before")
    @classmethod
    def _default_exchange(cls, v):
        v = _strip_or_none(v)
        return (v or "ASX").upper()

    @field_validator("stress_signal", mode="before")
    @classmethod
    def _blank_stress_to_none(cls, v):
        return _strip_or_none(v)

    def to_record(self) -> Company:
        return Company(
            name=self.name,
            ticker=self.ticker,
            exchange=self.exchange,
            stress_signal=self.stress_signal,
        )


class CompanyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    ticker: str
    exchange: str
    stress_signal: str | None = None


class ParseCompaniesRequest(BaseModel):
    text: str | None = None
    companies: List[dict] | None = None

    @field_validator("text", mode="before")
    @classmethod
    def _blank_text_to_none(cls, v):
        return _strip_or_none(v)

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str | None) -> str | None:
        if v is not None and len(v) > MAX_TEXT_LEN:
            raise ValueError(f"text is too long; maximum length is {MAX_TEXT_LEN} characters")
        return v

    @model_validator(mode="after")
    def _require_input(self):
        if self.text is None and not self.companies:
            raise ValueError("provide either 'text' or 'companies'")
        return self


class ParseCompaniesResponse(BaseModel):
    companies: List[CompanyOut]
    excluded: List[str] = []


# ---------------------------------------------------------------------------
# Relationships / WHO CARES
# ---------------------------------------------------------------------------


class RelationshipIn(BaseModel):
    entity_name: str
    entity_kind: EntityKindField | None = None
    category: str
    details: str = ""

    @field_validator("entity_name")
    @classmethod
    def validate_entity_name(cls, v: str) -> str:
        v = " ".join(v.split())
        if not v:
            raise ValueError("entity_name must not be empty")
        return v

    @field_validator("category")
    @classmethod
    def _normalise_category(cls, v: str) -> str:
        return normalize_category(v)

    def to_record(self) -> Relationship:
        return Relationship(
            entity_name=self.entity_name,
            entity_kind=self.entity_kind or entity_kind_for(self.category),
            category=self.category,
            details=self.details,
        )


class RelationshipOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    entity_name: str
    entity_kind: EntityKindField
    category: str
    details: str = ""


class CompanyRelationshipsIn(CompanyIn):
    relationships: List[RelationshipIn] = []
    processing_status: Literal["completed", "no_data"] = "completed"
    discovery_source: str | None = None

    def to_relationships_record(self) -> CompanyRelationships:
        return CompanyRelationships(
            company=self.to_record(),
            relationships=tuple(r.to_record() for r in self.relationships),
            processing_status=self.processing_status,
            discovery_source=self.discovery_source,
        )


class CompanyRelationshipsOut(CompanyOut):
    relationships: List[RelationshipOut] = []
    processing_status: Literal["completed", "no_data"]
    discovery_source: str | None = None


class ExposureDetailOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ticker: str
    relationship_category: str


class WhoCaresEntityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    entity_name: str
    entity_kind: EntityKindField
    primary_category: str
    exposure_count: int
    exposed_companies: List[str]
    exposure_details: List[ExposureDetailOut]

    @model_validator(mode="after")
    def _check_counts(self):
        if not (self.exposure_count == len(self.exposed_companies) == len(self.exposure_details)):
            raise ValueError("exposure_count must equal the number of exposed companies and details")
        if len(set(self.exposed_companies)) != len(self.exposed_companies):
            raise ValueError("exposed_companies must not contain duplicate tickers")
        return self

    def to_record(self) -> WhoCaresEntity:
        return WhoCaresEntity(
            entity_name=self.entity_name,
            entity_kind=self.entity_kind,
            primary_category=self.primary_category,
            exposure_count=self.exposure_count,
            exposed_companies=tuple(self.exposed_companies),
            exposure_details=tuple(
                ExposureDetail(ticker=d.ticker, relationship_category=d.relationship_category)
                for d in self.exposure_details
            ),
        )


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------


class DiscoverBatchRequest(BaseModel):
    companies: List[CompanyIn]
    include_summary: bool = False

    @field_validator("companies")
    @classmethod
    def validate_companies(cls, v: List[CompanyIn]) -> List[CompanyIn]:
        if not v:
            raise ValueError("companies array is required")
        if len(v) > MAX_BATCH_COMPANIES:
            raise ValueError(f"at most {MAX_BATCH_COMPANIES} companies per batch")
        return v


class BatchStatsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_companies: int
    total_relationships: int
    multi_exposure_entities: int
    processing_time_ms: int
    search_mode: str
    degraded_companies: int = 0


class SuggestedApproachOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    target: str
    angle: str
    advisory_type: str


class NarrativeSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    headline: str
    key_findings: List[str] = []
    suggested_approaches: List[SuggestedApproachOut] = []
    disclaimer: str
    generated_by: Literal["llm", "template", "empty"]


class BatchResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    companies: List[CompanyRelationshipsOut]
    who_cares: List[WhoCaresEntityOut]
    stats: BatchStatsOut
    narrative_summary: NarrativeSummaryOut | None = None


class WhoCaresRequest(BaseModel):
    companies: List[CompanyRelationshipsIn]


class WhoCaresResponse(BaseModel):
    entities: List[WhoCaresEntityOut]


class SummarizeRequest(BaseModel):
    companies: List[CompanyRelationshipsIn]
    who_cares: List[WhoCaresEntityOut] = []


class HealthOut(BaseModel):
    status: Literal["ok"] = "ok"
    env: str
    extraction_chain: List[str]
    semantic_resolution: bool
    narrative_llm: bool
