from uuid import uuid4
import logging

from fastapi import APIRouter, Depends, HTTPException

from ..core.config import get_settings
from ..schemas.batch import (
    BatchResultOut,
    CompanyOut,
    DiscoverBatchRequest,
    HealthOut,
    NarrativeSummaryOut,
    ParseCompaniesRequest,
    ParseCompaniesResponse,
    SummarizeRequest,
    WhoCaresEntityOut,
    WhoCaresRequest,
    WhoCaresResponse,
)
from ..services.aggregation import aggregate
from ..services.company_parser import parse_companies
from ..services.errors import InputError
from ..services.orchestrator import BatchPipeline

router = APIRouter(tags=["batch"])

logger = logging.getLogger(__name__)


def get_pipeline() -> BatchPipeline:
    """Fresh pipeline per request: the extraction chain is frozen per batch."""
    return BatchPipeline.from_settings(get_settings())


@router.post("/parse-companies", response_model=ParseCompaniesResponse)
def parse_companies_route(payload: ParseCompaniesRequest):
    raw = payload.text if payload.text is not None else payload.companies
    try:
        outcome = parse_companies(raw)
    except InputError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ParseCompaniesResponse(
        companies=[CompanyOut.model_validate(c, from_attributes=True) for c in outcome.companies],
        excluded=outcome.excluded,
    )


@router.post("/discover-batch", response_model=BatchResultOut)
async def discover_batch_route(
    payload: DiscoverBatchRequest,
    pipeline: BatchPipeline = Depends(get_pipeline),
):
    batch_id = uuid4().hex
    logger.info(
        "Starting batch discovery for %d companies",
        len(payload.companies),
        extra={"batch_id": batch_id, "step": "discover_batch"},
    )

    result = await pipeline.discover_batch(
        [c.to_record() for c in payload.companies],
        batch_id=batch_id,
    )
    out = BatchResultOut.model_validate(result, from_attributes=True)

    if payload.include_summary:
        summary = await pipeline.summarize(result.companies, result.who_cares)
        out.narrative_summary = NarrativeSummaryOut.model_validate(summary, from_attributes=True)

    return out


@router.post("/who-cares", response_model=WhoCaresResponse)
def who_cares_route(payload: WhoCaresRequest):
    companies = [c.to_relationships_record() for c in payload.companies]
    entities = aggregate(companies)
    return WhoCaresResponse(
        entities=[WhoCaresEntityOut.model_validate(e, from_attributes=True) for e in entities]
    )


@router.post("/summarize", response_model=NarrativeSummaryOut)
async def summarize_route(
    payload: SummarizeRequest,
    pipeline: BatchPipeline = Depends(get_pipeline),
):
    summary = await pipeline.summarize(
        [c.to_relationships_record() for c in payload.companies],
        [e.to_record() for e in payload.who_cares],
    )
    return NarrativeSummaryOut.model_validate(summary, from_attributes=True)


@router.get("/health", response_model=HealthOut)
def health(pipeline: BatchPipeline = Depends(get_pipeline)):
    settings = get_settings()
    return HealthOut(
        env=settings.ENV,
        extraction_chain=pipeline.chain.strategy_names,
        semantic_resolution=pipeline.canonicalizer.resolver is not None,
        narrative_llm=pipeline.summarizer.service is not None,
    )
