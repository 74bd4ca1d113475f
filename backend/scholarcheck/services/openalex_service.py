"""
OpenAlex works search for academic fact-checking.
"""

from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from scholarcheck.config import get_settings
from scholarcheck.schemas.paper import NO_ABSTRACT, PDF_MIME_TYPE, CandidatePaperData, PaperLink
from scholarcheck.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

GOLD_OPEN_ACCESS_FILTER = "open_access.oa_status:gold"


class SearchError(Exception):
    """Raised when an academic search API call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SearchResult(BaseModel):
    results: List[CandidatePaperData]
    total_count: int


def reconstruct_abstract(inverted_index: Any) -> str:
    """
    Rebuild abstract text from OpenAlex's word -> positions index.

    Words are placed by ascending position and joined with single spaces.
    An empty or malformed index yields "No abstract available".
    """
    if not isinstance(inverted_index, dict) or not inverted_index:
        return NO_ABSTRACT

    placed = []
    try:
        for word, positions in inverted_index.items():
            if not isinstance(word, str) or not isinstance(positions, list):
                return NO_ABSTRACT
            for position in positions:
                if isinstance(position, bool) or not isinstance(position, int):
                    return NO_ABSTRACT
                placed.append((position, word))
    except (AttributeError, TypeError):
        return NO_ABSTRACT

    if not placed:
        return NO_ABSTRACT

    placed.sort(key=lambda item: item[0])
    return " ".join(word for _, word in placed)


def map_work(work: Dict[str, Any]) -> CandidatePaperData:
    """Map one raw OpenAlex work to a CandidatePaperData."""
    primary_location = work.get("primary_location") or {}
    source = primary_location.get("source") or {}
    open_access = work.get("open_access") or {}
    primary_topic = work.get("primary_topic") or {}

    summary = work.get("abstract")
    if not summary:
        summary = reconstruct_abstract(work.get("abstract_inverted_index"))

    authors = []
    for authorship in work.get("authorships") or []:
        name = (authorship.get("author") or {}).get("display_name")
        if name:
            authors.append(name)

    links = []
    landing_page = primary_location.get("landing_page_url") or work.get("id")
    if landing_page:
        links.append(PaperLink(href=landing_page, mime_type="text/html", relation="alternate"))
    if primary_location.get("pdf_url"):
        links.append(PaperLink(href=primary_location["pdf_url"], mime_type=PDF_MIME_TYPE, relation="related"))
    if open_access.get("oa_url"):
        links.append(PaperLink(href=open_access["oa_url"], mime_type=PDF_MIME_TYPE, relation="related"))

    return CandidatePaperData(
        id=work.get("id") or "",
        title=work.get("title") or work.get("display_name"),
        summary=summary,
        published=work.get("publication_date"),
        authors=authors,
        doi=work.get("doi"),
        primary_category=primary_topic.get("display_name") or work.get("type"),
        categories=[t.get("display_name") for t in work.get("topics") or [] if t.get("display_name")],
        links=links,
        relevance_score=work.get("relevance_score"),
        publication_year=work.get("publication_year"),
        cited_by_count=work.get("cited_by_count"),
        journal_name=source.get("display_name"),
        publisher=source.get("host_organization_name"),
    )


class OpenAlexService:
    """Client for the OpenAlex works endpoint."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.base_url = settings.openalex_base_url.rstrip("/")
        self.transport = transport

    async def search(
        self,
        query: str,
        per_page: Optional[int] = None,
        sort_by: str = "relevance_score:desc",
        filters: Optional[str] = None,
    ) -> SearchResult:
        """
        Search OpenAlex works.

        Args:
            query: Full-text search query, boolean operators allowed
            per_page: Page size
            sort_by: OpenAlex sort expression
            filters: OpenAlex filter expression, e.g. "open_access.oa_status:gold"

        Returns:
            SearchResult with mapped papers and the total match count

        Raises:
            SearchError: On transport errors, non-2xx responses or unparseable bodies
        """
        params: Dict[str, Any] = {
            "search": query,
            "per_page": per_page or settings.search_per_page,
            "sort": sort_by,
        }
        if filters:
            params["filter"] = filters
        if settings.openalex_mailto:
            params["mailto"] = settings.openalex_mailto

        logger.info("Searching OpenAlex", query=query, per_page=params["per_page"], filters=filters)

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=settings.search_timeout_seconds) as client:
                response = await client.get(f"{self.base_url}/works", params=params)
                response.raise_for_status()
                data = response.json()

        except httpx.HTTPStatusError as e:
            logger.error("OpenAlex returned error status", status_code=e.response.status_code, query=query)
            raise SearchError(
                f"OpenAlex API returned status {e.response.status_code}",
                status_code=e.response.status_code,
            )
        except httpx.HTTPError as e:
            logger.error("OpenAlex request failed", query=query, error=str(e))
            raise SearchError(f"OpenAlex request failed: {str(e)}")
        except ValueError as e:
            logger.error("Failed to parse OpenAlex response", query=query, error=str(e))
            raise SearchError(f"Failed to parse OpenAlex response: {str(e)}")

        works = data.get("results") or []
        results = [map_work(work) for work in works]
        total_count = (data.get("meta") or {}).get("count") or len(results)

        logger.info("OpenAlex search completed", query=query, result_count=len(results), total_count=total_count)
        return SearchResult(results=results, total_count=total_count)
