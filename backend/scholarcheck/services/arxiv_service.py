"""
arXiv Atom API search.
"""

import xml.etree.ElementTree as ET
from typing import List, Optional

import httpx

from scholarcheck.config import get_settings
from scholarcheck.schemas.paper import NO_ABSTRACT, PDF_MIME_TYPE, CandidatePaperData, PaperLink
from scholarcheck.services.openalex_service import SearchError, SearchResult
from scholarcheck.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

ATOM = "{http://www.w3.org/2005/Atom}"
OPENSEARCH = "{http://a9.com/-/spec/opensearch/1.1/}"
ARXIV = "{http://arxiv.org/schemas/atom}"


def _text(element: Optional[ET.Element]) -> Optional[str]:
    if element is None or element.text is None:
        return None
    return " ".join(element.text.split())


def parse_feed(xml_text: str) -> SearchResult:
    """
    Parse an arXiv Atom feed into papers.

    Raises:
        SearchError: If the feed is not valid XML
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise SearchError(f"Failed to parse arXiv feed: {str(e)}")

    papers: List[CandidatePaperData] = []
    for entry in root.findall(f"{ATOM}entry"):
        links = []
        for link in entry.findall(f"{ATOM}link"):
            href = link.get("href")
            if not href:
                continue
            mime_type = link.get("type")
            if link.get("title") == "pdf":
                mime_type = PDF_MIME_TYPE
            links.append(PaperLink(href=href, mime_type=mime_type, relation=link.get("rel")))

        primary = entry.find(f"{ARXIV}primary_category")
        published = _text(entry.find(f"{ATOM}published"))
        year = int(published[:4]) if published and published[:4].isdigit() else None

        papers.append(CandidatePaperData(
            id=_text(entry.find(f"{ATOM}id")) or "",
            title=_text(entry.find(f"{ATOM}title")),
            summary=_text(entry.find(f"{ATOM}summary")) or NO_ABSTRACT,
            published=published,
            authors=[
                name for name in (_text(a.find(f"{ATOM}name")) for a in entry.findall(f"{ATOM}author")) if name
            ],
            doi=_text(entry.find(f"{ARXIV}doi")),
            primary_category=primary.get("term") if primary is not None else None,
            categories=[c.get("term") for c in entry.findall(f"{ATOM}category") if c.get("term")],
            links=links,
            publication_year=year,
            journal_name=_text(entry.find(f"{ARXIV}journal_ref")),
        ))

    total = _text(root.find(f"{OPENSEARCH}totalResults"))
    total_count = int(total) if total and total.isdigit() else len(papers)
    return SearchResult(results=papers, total_count=total_count)


class ArxivService:
    """Client for the arXiv query API."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.base_url = settings.arxiv_base_url
        self.transport = transport

    async def search(self, query: str, start: int = 0, max_results: int = 10) -> SearchResult:
        """
        Search arXiv.

        Raises:
            SearchError: On transport errors, non-2xx responses or invalid XML
        """
        params = {"search_query": query, "start": start, "max_results": max_results}
        logger.info("Searching arXiv", query=query, start=start, max_results=max_results)

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=settings.search_timeout_seconds) as client:
                response = await client.get(self.base_url, params=params)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("arXiv returned error status", status_code=e.response.status_code)
            raise SearchError(f"arXiv API returned status {e.response.status_code}", status_code=e.response.status_code)
        except httpx.HTTPError as e:
            logger.error("arXiv request failed", error=str(e))
            raise SearchError(f"arXiv request failed: {str(e)}")

        result = parse_feed(response.text)
        logger.info("arXiv search completed", result_count=len(result.results), total_count=result.total_count)
        return result
