"""
Pytest configuration and fixtures for testing.
"""

import os
import shutil
import tempfile

# Settings read the environment at import time
os.environ["ANTHROPIC_API_KEY"] = "test-key"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STORAGE_PATH"] = tempfile.mkdtemp()
os.environ["ENVIRONMENT"] = "test"

from typing import Any, Callable, Dict, Generator, List
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from scholarcheck.agents.base_agent import StructuredExtractor
from scholarcheck.config import get_settings
from scholarcheck.db.database import Base, build_engine, get_db
from scholarcheck.main import app
from scholarcheck.schemas.paper import CandidatePaperData, PaperLink, PreEvaluation

import scholarcheck.models.fact_check  # noqa: F401
import scholarcheck.models.paper  # noqa: F401


@pytest.fixture(scope="session")
def test_settings() -> Any:
    """Override settings for testing."""
    settings = get_settings()
    settings.database_url = "sqlite://"
    settings.anthropic_api_key = "test-key"
    settings.storage_path = os.environ["STORAGE_PATH"]
    settings.deep_analysis_delay_seconds = 0.0
    return settings


@pytest.fixture(scope="session")
def test_engine(test_settings: Any) -> Engine:
    """Create an in-memory SQLite engine shared by the whole run."""
    return build_engine(test_settings.database_url)


@pytest.fixture(scope="function")
def test_db(test_engine: Engine) -> Generator[Session, None, None]:
    """Fresh tables and a session for each test."""
    Base.metadata.create_all(bind=test_engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def client(test_db: Session) -> Generator[TestClient, None, None]:
    """Create test client with database dependency override."""
    def override_get_db() -> Generator[Session, None, None]:
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def mock_extractor() -> Mock:
    """StructuredExtractor double whose extract/stream_text are configured per test."""
    extractor = Mock(spec=StructuredExtractor)
    extractor.extract = AsyncMock()
    return extractor


@pytest.fixture
def make_paper() -> Callable[..., CandidatePaperData]:
    """Factory for candidate papers."""
    def _make(
        paper_id: str = "https://openalex.org/W1",
        summary: Any = "Vitamin D deficiency was associated with higher depression scores.",
        pdf_url: Any = None,
        verdict: Any = None,
        **overrides: Any,
    ) -> CandidatePaperData:
        links = [PaperLink(href=f"{paper_id}/landing", mime_type="text/html", relation="alternate")]
        if pdf_url:
            links.append(PaperLink(href=pdf_url, mime_type="application/pdf", relation="related"))
        fields: Dict[str, Any] = {
            "id": paper_id,
            "title": f"Paper {paper_id.rsplit('/', 1)[-1]}",
            "summary": summary,
            "published": "2021-03-01",
            "authors": ["A. Author", "B. Author"],
            "doi": f"https://doi.org/10.1000/{paper_id.rsplit('/', 1)[-1]}",
            "links": links,
            "publication_year": 2021,
            "cited_by_count": 42,
            "journal_name": "Journal of Affective Disorders",
            "publisher": "Elsevier",
            "relevance_score": 12.5,
        }
        if verdict:
            fields["pre_evaluation"] = PreEvaluation(verdict=verdict, summary=f"Paper {verdict} the statement.")
        fields.update(overrides)
        return CandidatePaperData(**fields)

    return _make


@pytest.fixture
def sample_openalex_work() -> Dict[str, Any]:
    """Raw OpenAlex work as returned by /works."""
    return {
        "id": "https://openalex.org/W2741809807",
        "doi": "https://doi.org/10.1192/bjp.bp.111.106666",
        "title": "Vitamin D deficiency and depression in adults: systematic review and meta-analysis",
        "display_name": "Vitamin D deficiency and depression in adults",
        "publication_year": 2013,
        "publication_date": "2013-01-01",
        "type": "article",
        "relevance_score": 845.2,
        "cited_by_count": 1210,
        "authorships": [
            {"author": {"display_name": "Rebecca E. S. Anglin"}},
            {"author": {"display_name": "Zainab Samaan"}},
            {"author": {}},
        ],
        "primary_location": {
            "landing_page_url": "https://www.cambridge.org/core/article/vitamin-d",
            "pdf_url": "https://www.cambridge.org/core/article/vitamin-d.pdf",
            "source": {
                "display_name": "The British Journal of Psychiatry",
                "host_organization_name": "Cambridge University Press",
            },
        },
        "open_access": {"oa_url": "https://europepmc.org/articles/vitamin-d.pdf"},
        "primary_topic": {"display_name": "Vitamin D and Health"},
        "topics": [{"display_name": "Vitamin D and Health"}, {"display_name": "Depression"}],
        "abstract_inverted_index": {
            "Low": [0],
            "vitamin": [1],
            "D": [2],
            "was": [3],
            "associated": [4],
            "with": [5],
            "depression.": [6],
        },
    }


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    return b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"


@pytest.fixture
def sample_session_papers() -> List[Dict[str, Any]]:
    """Papers in the loose shape clients post to /fact-check/session."""
    return [
        {
            "id": "https://openalex.org/W1",
            "title": "Vitamin D and depression",
            "authors": ["A. Author"],
            "summary": "Low vitamin D was associated with depression.",
            "published": "2013-01-01",
            "doi": "https://doi.org/10.1000/1",
            "journal_name": "BJP",
            "publisher": "CUP",
            "relevance_score": 845.2,
            "cited_by_count": 1210,
            "links": [{"href": "https://example.org/1.pdf", "type": "application/pdf", "rel": "related"}],
            "pre_evaluation": {
                "verdict": "supports",
                "summary": "Low vitamin D is associated with depression.",
                "snippet": "Low vitamin D was associated with depression.",
            },
        },
        {
            "id": "https://openalex.org/W2",
            "title": "Supplementation trial",
            "authors": ["C. Author"],
            "summary": "No abstract available",
            "published": None,
            "doi": None,
            "journal_name": None,
            "publisher": None,
            "relevance_score": None,
            "cited_by_count": 3,
            "links": [],
            "pre_evaluation": {"verdict": "neutral", "summary": "No abstract available.", "snippet": ""},
        },
    ]


@pytest.fixture(autouse=True)
def cleanup_test_files(test_settings: Any) -> Generator[None, None, None]:
    """Clean up stored uploads after each test."""
    yield
    if os.path.exists(test_settings.storage_path):
        shutil.rmtree(test_settings.storage_path, ignore_errors=True)
