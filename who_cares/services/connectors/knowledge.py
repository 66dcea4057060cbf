from __future__ import annotations

from typing import List

from .base import BaseExtractionStrategy
from ..extraction import extract_mentions
from ..llm import has_llm_credentials
from ..records import Company, RawEntityMention
from ...core.config import Settings, get_settings


class KnowledgeStrategy(BaseExtractionStrategy):
    """LLM-only extraction from the model's own knowledge; no web research."""

    name = "knowledge"

    def __init__(self, settings: Settings | None = None, *, llm_client=None) -> None:
        self._settings = settings or get_settings()
        self._llm_client = llm_client

    def is_configured(self) -> bool:
        return has_llm_credentials(self._settings)

    async def extract(self, company: Company) -> List[RawEntityMention]:
        return await extract_mentions(
            company, "", client=self._llm_client, timeout=self._settings.EXTRACTION_TIMEOUT_SECONDS
        )
