"""
Search ladder: optimized query first, then progressively simpler fallbacks.
"""

from typing import List, Optional

from pydantic import BaseModel

from scholarcheck.agents.query_builder import QueryBuilderAgent, SearchQueryPlan
from scholarcheck.config import get_settings
from scholarcheck.schemas.paper import CandidatePaperData
from scholarcheck.services.openalex_service import GOLD_OPEN_ACCESS_FILTER, OpenAlexService
from scholarcheck.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


class PaperSearchOutcome(BaseModel):
    papers: List[CandidatePaperData]
    total_count: int
    query_used: Optional[str] = None
    attempts: List[str]


class PaperSearchService:
    """Runs the search ladder against OpenAlex."""

    def __init__(self, client: Optional[OpenAlexService] = None) -> None:
        self.client = client or OpenAlexService()

    async def search_with_fallbacks(self, plan: SearchQueryPlan) -> PaperSearchOutcome:
        """
        Search with the optimized query, then each fallback in turn.

        The first query that returns papers wins and no later query is tried.
        Zero results on every query is not an error.

        Raises:
            SearchError: On the first transport or HTTP failure
        """
        attempts: List[str] = []

        ladder = [(plan.optimized_query, settings.search_per_page, GOLD_OPEN_ACCESS_FILTER)]
        ladder.extend((q, settings.fallback_per_page, None) for q in QueryBuilderAgent.fallback_queries(plan))

        for query, per_page, filters in ladder:
            if not query or not query.strip():
                continue
            attempts.append(query)
            result = await self.client.search(query, per_page=per_page, filters=filters)
            if result.results:
                logger.info("Search ladder found papers",
                            query_used=query,
                            attempt=len(attempts),
                            paper_count=len(result.results))
                return PaperSearchOutcome(
                    papers=result.results,
                    total_count=result.total_count,
                    query_used=query,
                    attempts=attempts,
                )
            logger.info("Query returned no papers, trying next fallback", query=query, attempt=len(attempts))

        logger.warning("Search ladder exhausted without results", attempts=len(attempts))
        return PaperSearchOutcome(papers=[], total_count=0, query_used=None, attempts=attempts)
