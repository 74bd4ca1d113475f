"""
Tests for the /papers API routes.
"""

import uuid
from unittest.mock import AsyncMock, Mock

import httpx
from fastapi.testclient import TestClient

from scholarcheck.agents.base_agent import ExtractionError
from scholarcheck.agents.paper_reader import PaperReaderAgent
from scholarcheck.dependencies import get_arxiv_service, get_paper_reader
from scholarcheck.main import app
from scholarcheck.schemas.extraction import FigureItem, PaperInfo, SectionBlock, SectionIndexItem
from scholarcheck.services.arxiv_service import ArxivService

ARXIV_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom" xmlns:opensearch="http://a9.com/-/spec/opensearch/1.1/">
  <opensearch:totalResults>1</opensearch:totalResults>
  <entry>
    <id>http://arxiv.org/abs/2101.00001v1</id>
    <title>A paper</title>
    <summary>An abstract.</summary>
    <link title="pdf" href="http://arxiv.org/pdf/2101.00001v1" rel="related"/>
  </entry>
</feed>"""


def upload(client: TestClient, content: bytes, filename: str = "paper.pdf"):
    return client.post("/papers/upload", files={"file": (filename, content, "application/pdf")})


def reader_double() -> Mock:
    reader = Mock(spec=PaperReaderAgent)
    reader.extract_info = AsyncMock(return_value=PaperInfo(title="Read me", authors=["A. Author"]))
    reader.extract_sections = AsyncMock(return_value=[
        SectionBlock(heading=f"{i}. Section", heading_number=f"{i}.", content=f"Body {i}") for i in range(1, 6)
    ])
    reader.assign_section_indexes = AsyncMock(return_value=[
        SectionIndexItem(order_index=i, section_index=str(i + 1)) for i in range(5)
    ])
    reader.extract_figures = AsyncMock(return_value=[
        FigureItem(figure_number="1", caption="Figure 1. Study flow.", description="Enrollment flow.", page_number=2)
    ])
    reader.extract_acronyms = AsyncMock(return_value=[])
    reader.extract_references = AsyncMock(return_value=[])
    return reader


class TestPapersApi:
    """Test read-mode routes."""

    def test_upload_and_get(self, client: TestClient, sample_pdf_bytes: bytes) -> None:
        response = upload(client, sample_pdf_bytes)

        assert response.status_code == 200
        paper_id = response.json()["paper_id"]

        response = client.get(f"/papers/{paper_id}")
        assert response.status_code == 200
        assert response.json()["status"] == "pending"
        assert response.json()["filename"] == "paper.pdf"

    def test_upload_rejects_other_types(self, client: TestClient) -> None:
        response = upload(client, b"hello", filename="notes.txt")

        assert response.status_code == 400
        assert "not allowed" in response.json()["error"]

    def test_extract_then_paginate_sections(self, client: TestClient, sample_pdf_bytes: bytes) -> None:
        app.dependency_overrides[get_paper_reader] = reader_double
        paper_id = upload(client, sample_pdf_bytes).json()["paper_id"]

        response = client.post(f"/papers/{paper_id}/extract")
        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["title"] == "Read me"

        response = client.get(f"/papers/{paper_id}/sections", params={"page": 2, "per_page": 2})
        body = response.json()
        assert body["total"] == 5
        assert [s["section_index"] for s in body["sections"]] == ["3", "4"]

        figures = client.get(f"/papers/{paper_id}/figures").json()
        assert figures == [{
            "position": 0,
            "figure_number": "1",
            "caption": "Figure 1. Study flow.",
            "description": "Enrollment flow.",
            "page_number": 2,
        }]
        assert client.get(f"/papers/{paper_id}/acronyms").json() == []
        assert client.get(f"/papers/{paper_id}/references").json() == []

    def test_extract_failure(self, client: TestClient, sample_pdf_bytes: bytes) -> None:
        reader = reader_double()
        reader.extract_info.side_effect = ExtractionError("Claude API error")
        app.dependency_overrides[get_paper_reader] = lambda: reader
        paper_id = upload(client, sample_pdf_bytes).json()["paper_id"]

        response = client.post(f"/papers/{paper_id}/extract")

        assert response.status_code == 500
        assert response.json()["error"] == "Upstream service error"
        assert client.get(f"/papers/{paper_id}").json()["status"] == "failed"

    def test_unknown_paper(self, client: TestClient) -> None:
        response = client.get(f"/papers/{uuid.uuid4()}/sections")

        assert response.status_code == 404
        assert response.json()["error"] == "Paper not found"

    def test_invalid_paper_id(self, client: TestClient) -> None:
        assert client.get("/papers/not-a-uuid").status_code == 400

    def test_arxiv_search(self, client: TestClient) -> None:
        service = ArxivService(transport=httpx.MockTransport(lambda request: httpx.Response(200, text=ARXIV_FEED)))
        app.dependency_overrides[get_arxiv_service] = lambda: service

        response = client.get("/papers/arxiv", params={"query": "all:vitamin"})

        assert response.status_code == 200
        body = response.json()
        assert body["total_count"] == 1
        assert body["results"][0]["links"][0]["type"] == "application/pdf"
