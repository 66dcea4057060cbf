from abc import ABC, abstractmethod
from typing import List

from ..records import Company, RawEntityMention


class BaseExtractionStrategy(ABC):
    """
    One way of discovering a company's relationships.

    ``extract`` may raise (network errors, ``UpstreamDegraded``); the chain
    running the strategy owns the fallback.
    """

    name: str

    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @abstractmethod
    async def extract(self, company: Company) -> List[RawEntityMention]:
        ...
