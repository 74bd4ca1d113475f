"""
Tests for the /fact-check API routes.
"""

from typing import Any, Callable, Dict, List
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from scholarcheck.agents.base_agent import ExtractionError
from scholarcheck.agents.chat_agent import ChatAgent
from scholarcheck.agents.query_builder import SearchQueryPlan
from scholarcheck.agents.verdict_aggregator import VerdictAggregatorAgent
from scholarcheck.dependencies import (
    get_chat_agent,
    get_fact_check_service,
    get_kafka_service,
    get_verdict_aggregator,
)
from scholarcheck.main import app
from scholarcheck.schemas.extraction import FinalVerdict
from scholarcheck.services.fact_check_service import (
    FactCheckRunResult,
    FactCheckService,
    PipelineError,
    PipelineStage,
)
from scholarcheck.services.kafka_service import KafkaConnectionError, KafkaService

STATEMENT = "Vitamin D deficiency is linked to increased risk of depression"

PLAN = SearchQueryPlan(
    statement=STATEMENT,
    query="vitamin D depression",
    optimized_query='"vitamin D" AND depression',
    keywords=["vitamin D", "depression", "mood", "deficiency", "serotonin"],
    research_areas=["psychiatry"],
    search_terms=[],
)

VERDICT = FinalVerdict(
    final_verdict="mostly_true",
    confidence_score=72,
    summary="Most studies find an association.",
    reasoning="r",
    supporting_evidence_count=1,
    contradicting_evidence_count=0,
    neutral_evidence_count=1,
    key_findings=[],
    limitations=[],
)


def create_session(client: TestClient, papers: List[Dict[str, Any]]) -> str:
    response = client.post("/fact-check/session", json={
        "statement": STATEMENT,
        "keywords": ["vitamin D", "depression"],
        "finalVerdict": VERDICT.model_dump(),
        "papers": papers,
    })
    assert response.status_code == 200
    return response.json()["shareableId"]


class TestErrorResponses:
    """Test request validation and error bodies."""

    def test_missing_statement_is_400(self, client: TestClient) -> None:
        response = client.post("/fact-check/search", json={}, headers={"X-Correlation-ID": "corr-123"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid request"
        assert "statement" in body["message"]
        assert body["correlation_id"] == "corr-123"
        assert response.headers["X-Correlation-ID"] == "corr-123"

    def test_blank_statement_is_400(self, client: TestClient) -> None:
        response = client.post("/fact-check/run", json={"statement": "   "})

        assert response.status_code == 400

    def test_unknown_session_is_404(self, client: TestClient) -> None:
        response = client.get("/fact-check/session", params={"shareableId": "nope"})

        assert response.status_code == 404
        assert response.json()["error"] == "Session not found"

    def test_missing_shareable_id_is_400(self, client: TestClient) -> None:
        response = client.get("/fact-check/session")

        assert response.status_code == 400

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestSessionRoutes:
    """Test session persistence routes."""

    def test_create_and_fetch_session(self, client: TestClient, sample_session_papers: List[Dict[str, Any]]) -> None:
        shareable_id = create_session(client, sample_session_papers)

        response = client.get("/fact-check/session", params={"shareableId": shareable_id})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["shareableId"] == shareable_id
        assert data["statement"] == STATEMENT
        assert data["finalVerdict"]["final_verdict"] == "mostly_true"
        assert [p["id"] for p in data["papers"]] == ["https://openalex.org/W1", "https://openalex.org/W2"]
        assert data["papers"][0]["pre_evaluation"]["verdict"] == "supports"
        assert "session_id" not in data

    def test_create_session_requires_papers(self, client: TestClient) -> None:
        response = client.post("/fact-check/session", json={"statement": STATEMENT})

        assert response.status_code == 400

    def test_queue_deep_analysis(self, client: TestClient, sample_session_papers: List[Dict[str, Any]]) -> None:
        kafka = Mock(spec=KafkaService)
        app.dependency_overrides[get_kafka_service] = lambda: kafka
        shareable_id = create_session(client, sample_session_papers)

        response = client.post(f"/fact-check/session/{shareable_id}/deep-analysis", json={"batchSize": 5})

        assert response.status_code == 202
        assert response.json()["status"] == "queued"
        job_id, published_id, batch_size, refresh = kafka.publish_deep_analysis_job.call_args.args
        assert published_id == shareable_id
        assert batch_size == 5
        assert refresh is False
        assert str(job_id) == response.json()["jobId"]

    def test_queue_deep_analysis_unknown_session(self, client: TestClient) -> None:
        kafka = Mock(spec=KafkaService)
        app.dependency_overrides[get_kafka_service] = lambda: kafka

        response = client.post("/fact-check/session/missing/deep-analysis")

        assert response.status_code == 404
        kafka.publish_deep_analysis_job.assert_not_called()

    def test_queue_unavailable(self, client: TestClient, sample_session_papers: List[Dict[str, Any]]) -> None:
        kafka = Mock(spec=KafkaService)
        kafka.publish_deep_analysis_job.side_effect = KafkaConnectionError("Cannot connect to Kafka")
        app.dependency_overrides[get_kafka_service] = lambda: kafka
        shareable_id = create_session(client, sample_session_papers)

        response = client.post(f"/fact-check/session/{shareable_id}/deep-analysis")

        assert response.status_code == 503


class TestPipelineRoutes:
    """Test the run, search and verdict routes."""

    @pytest.fixture
    def service(self) -> Mock:
        service = Mock(spec=FactCheckService)
        service.run = AsyncMock()
        service.search = AsyncMock()
        app.dependency_overrides[get_fact_check_service] = lambda: service
        return service

    def test_run(self, client: TestClient, service: Mock, make_paper: Callable) -> None:
        service.run.return_value = FactCheckRunResult(
            statement=STATEMENT,
            stage=PipelineStage.DONE,
            plan=PLAN,
            papers=[make_paper(verdict="supports")],
            total_count=42,
            final_verdict=VERDICT,
            session_id="00000000-0000-0000-0000-000000000001",
            shareable_id="abc123",
        )

        response = client.post("/fact-check/run", json={"statement": f"  {STATEMENT}  "})

        assert response.status_code == 200
        body = response.json()
        assert body["stage"] == "done"
        assert body["shareableId"] == "abc123"
        assert body["totalResults"] == 42
        assert body["finalVerdict"]["confidence_score"] == 72
        service.run.assert_awaited_once_with(STATEMENT)

    def test_run_stage_failure(self, client: TestClient, service: Mock) -> None:
        service.run.side_effect = PipelineError(
            PipelineStage.SEARCHING, STATEMENT, "Fact-check failed while searching: OpenAlex API returned status 502"
        )

        response = client.post("/fact-check/run", json={"statement": STATEMENT})

        assert response.status_code == 500
        assert response.json()["error"] == "Fact-check failed"
        assert response.headers["X-Pipeline-Stage"] == "searching"

    def test_verdict_without_pre_evaluations(self, client: TestClient, mock_extractor: Mock, make_paper: Callable) -> None:
        app.dependency_overrides[get_verdict_aggregator] = lambda: VerdictAggregatorAgent(mock_extractor)

        response = client.post("/fact-check/verdict", json={
            "statement": STATEMENT,
            "papers": [make_paper().model_dump(by_alias=True)],
        })

        assert response.status_code == 400
        assert response.json()["error"] == "No papers with pre-evaluation results found"
        mock_extractor.extract.assert_not_awaited()

    def test_verdict(self, client: TestClient, mock_extractor: Mock, make_paper: Callable) -> None:
        mock_extractor.extract.return_value = VERDICT
        app.dependency_overrides[get_verdict_aggregator] = lambda: VerdictAggregatorAgent(mock_extractor)

        response = client.post("/fact-check/verdict", json={
            "statement": STATEMENT,
            "papers": [
                make_paper("https://openalex.org/W1", verdict="supports").model_dump(by_alias=True),
                make_paper("https://openalex.org/W2", verdict="supports").model_dump(by_alias=True),
            ],
        })

        assert response.status_code == 200
        assert response.json()["supporting_evidence_count"] == 2
        assert response.json()["neutral_evidence_count"] == 0

    def test_verdict_drops_incomplete_papers(
        self, client: TestClient, mock_extractor: Mock, make_paper: Callable
    ) -> None:
        mock_extractor.extract.return_value = VERDICT
        app.dependency_overrides[get_verdict_aggregator] = lambda: VerdictAggregatorAgent(mock_extractor)
        no_summary = make_paper("https://openalex.org/W2").model_dump(by_alias=True)
        no_summary["pre_evaluation"] = {"verdict": "supports", "summary": None}
        no_id = make_paper("https://openalex.org/W3", verdict="contradicts").model_dump(by_alias=True)
        del no_id["id"]

        response = client.post("/fact-check/verdict", json={
            "statement": STATEMENT,
            "papers": [
                make_paper("https://openalex.org/W1", verdict="supports").model_dump(by_alias=True),
                no_summary,
                no_id,
            ],
        })

        assert response.status_code == 200
        assert response.json()["supporting_evidence_count"] == 1
        assert response.json()["contradicting_evidence_count"] == 1
        prompt = mock_extractor.extract.await_args.args[1]
        assert "Total papers analyzed: 2" in prompt


class TestChatRoute:
    """Test the streaming chat route."""

    @pytest.fixture
    def agent(self, mock_extractor: Mock) -> ChatAgent:
        async def fake_stream(system_prompt: str, messages: List[Dict[str, str]]):
            for chunk in ["Evidence ", "mostly ", "supports it."]:
                yield chunk

        mock_extractor.stream_text = fake_stream
        agent = ChatAgent(mock_extractor)
        app.dependency_overrides[get_chat_agent] = lambda: agent
        return agent

    def test_chat_with_session(
        self, client: TestClient, agent: ChatAgent, sample_session_papers: List[Dict[str, Any]]
    ) -> None:
        shareable_id = create_session(client, sample_session_papers)

        response = client.post("/fact-check/chat", json={
            "shareableId": shareable_id,
            "messages": [{"role": "user", "content": "Is the evidence strong?"}],
        })

        assert response.status_code == 200
        assert response.text == "Evidence mostly supports it."
        assert response.headers["content-type"].startswith("text/plain")

    def test_chat_with_direct_data(self, client: TestClient, agent: ChatAgent) -> None:
        response = client.post("/fact-check/chat", json={
            "directData": {"statement": STATEMENT, "papers": []},
            "messages": [{"role": "user", "content": "Summarize"}],
        })

        assert response.status_code == 200
        assert response.text == "Evidence mostly supports it."

    def test_chat_requires_context(self, client: TestClient, agent: ChatAgent) -> None:
        response = client.post("/fact-check/chat", json={"messages": [{"role": "user", "content": "Hi"}]})

        assert response.status_code == 400
        assert response.json()["error"] == "Either shareableId or directData is required"

    def test_chat_stream_failure_is_error_status(self, client: TestClient, mock_extractor: Mock) -> None:
        async def failing_stream(system_prompt: str, messages: List[Dict[str, str]]):
            raise ExtractionError("Claude API error: overloaded")
            yield  # pragma: no cover

        mock_extractor.stream_text = failing_stream
        app.dependency_overrides[get_chat_agent] = lambda: ChatAgent(mock_extractor)

        response = client.post("/fact-check/chat", json={
            "directData": {"statement": STATEMENT, "papers": []},
            "messages": [{"role": "user", "content": "Summarize"}],
        })

        assert response.status_code == 500
        assert response.json()["error"] == "Upstream service error"
