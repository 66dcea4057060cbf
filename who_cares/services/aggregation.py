"""
Multi-exposure aggregation.

Pure functions over canonical relationships: no I/O, no clock, no randomness.
Given the same companies in the same order the output is identical.
"""
from __future__ import annotations

from typing import Dict, List, Mapping, Sequence, Tuple

from .errors import AggregationPreconditionError
from .records import (
    Company,
    CompanyRelationships,
    EntityKind,
    ExposureDetail,
    RawEntityMention,
    Relationship,
    WhoCaresEntity,
    entity_kind_for,
    normalize_category,
)

MIN_EXPOSURE = 2


def build_company_relationships(
    company: Company,
    mentions: Sequence[RawEntityMention],
    canonical: Mapping[str, str],
    *,
    source: str | None = None,
) -> CompanyRelationships:
    """
    Re-attach canonical names to one company's raw mentions.

    Discovery order is kept; a repeated ``(entity_name, category)`` pair
    within the company keeps its first occurrence.
    """
    relationships: List[Relationship] = []
    seen: set[Tuple[str, str]] = set()
    for m in mentions:
        name = canonical.get(m.name, m.name)
        category = normalize_category(m.type)
        key = (name, category)
        if key in seen:
            continue
        seen.add(key)
        relationships.append(
            Relationship(
                entity_name=name,
                entity_kind=entity_kind_for(category),
                category=category,
                details=m.details,
            )
        )

    return CompanyRelationships(
        company=company,
        relationships=tuple(relationships),
        processing_status="completed" if relationships else "no_data",
        discovery_source=source if relationships else None,
    )


def count_relationships(companies: Sequence[CompanyRelationships]) -> int:
    return sum(len(c.relationships) for c in companies)


def aggregate(companies: Sequence[CompanyRelationships]) -> List[WhoCaresEntity]:
    """
    Entities related to at least ``MIN_EXPOSURE`` distinct companies, most
    exposed first.

    - Representative kind/category: first encountered, scanning companies in
      input order and relationships in stored order.
    - Per-company detail: that company's first category for the entity.
    - Ties keep first-encountered entity order (stable sort).
    """
    per_entity: Dict[str, Dict[str, str]] = {}
    representative: Dict[str, Tuple[EntityKind, str]] = {}

    for company in companies:
        ticker = (company.ticker or "").strip()
        if not ticker:
            raise AggregationPreconditionError(
                f"company {company.name!r} reached aggregation without a ticker"
            )
        for rel in company.relationships:
            representative.setdefault(rel.entity_name, (rel.entity_kind, rel.category))
            per_entity.setdefault(rel.entity_name, {}).setdefault(ticker, rel.category)

    entities: List[WhoCaresEntity] = []
    for name, by_ticker in per_entity.items():
        if len(by_ticker) < MIN_EXPOSURE:
            continue
        kind, category = representative[name]
        entities.append(
            WhoCaresEntity(
                entity_name=name,
                entity_kind=kind,
                primary_category=category,
                exposure_count=len(by_ticker),
                exposed_companies=tuple(by_ticker),
                exposure_details=tuple(
                    ExposureDetail(ticker=t, relationship_category=c)
                    for t, c in by_ticker.items()
                ),
            )
        )

    entities.sort(key=lambda e: e.exposure_count, reverse=True)
    return entities
