"""
Download PDF bytes from publisher sites that refuse provider-side fetches.
"""

from typing import Dict, Optional

import httpx

from scholarcheck.config import get_settings
from scholarcheck.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


class PdfFetchError(Exception):
    """Base exception for PDF download failures."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AccessDeniedError(PdfFetchError):
    """Raised when the host answers 403."""
    pass


class FetchError(PdfFetchError):
    """Raised on any other non-2xx response, timeout or transport failure."""
    pass


def browser_headers() -> Dict[str, str]:
    """Request headers that look like an ordinary browser download."""
    return {
        "User-Agent": settings.pdf_user_agent,
        "Accept": "application/pdf,application/octet-stream,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "DNT": "1",
        "Connection": "keep-alive",
    }


class PdfFetcher:
    """Fetches PDFs with browser-like headers and a bounded timeout."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: Optional[float] = None) -> None:
        self.transport = transport
        self.timeout = timeout or settings.pdf_fetch_timeout_seconds

    async def fetch(self, url: str) -> bytes:
        """
        Download a PDF.

        Args:
            url: Absolute URL of the PDF

        Returns:
            The response body

        Raises:
            AccessDeniedError: If the host answers 403
            FetchError: On other error statuses, timeouts and transport errors
        """
        logger.info("Fetching PDF", url=url)

        try:
            async with httpx.AsyncClient(
                transport=self.transport,
                timeout=self.timeout,
                follow_redirects=True,
                headers=browser_headers(),
            ) as client:
                response = await client.get(url)

        except httpx.TimeoutException as e:
            logger.error("PDF fetch timed out", url=url, error=str(e))
            raise FetchError(f"Timed out fetching PDF: {str(e)}")

        except httpx.HTTPError as e:
            logger.error("PDF fetch failed", url=url, error=str(e))
            raise FetchError(f"Failed to fetch PDF: {str(e)}")

        if response.status_code == 403:
            logger.warning("PDF fetch forbidden", url=url)
            raise AccessDeniedError(f"Access denied fetching PDF: {url}", status_code=403)

        if response.status_code >= 400:
            logger.error("PDF fetch returned error status", url=url, status_code=response.status_code)
            raise FetchError(
                f"PDF host returned status {response.status_code}",
                status_code=response.status_code,
            )

        content = response.content
        if not content:
            raise FetchError("PDF host returned an empty body", status_code=response.status_code)

        logger.info("PDF fetched", url=url, size_bytes=len(content))
        return content
