"""
API routes for academic fact-checking.
Handles search, verdicts, paper analysis, sessions, deep-analysis jobs and chat.
"""

import uuid
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse

from scholarcheck.agents.chat_agent import ChatAgent
from scholarcheck.agents.paper_analyzer import DeepPaperAnalyzerAgent
from scholarcheck.agents.verdict_aggregator import VerdictAggregatorAgent
from scholarcheck.dependencies import (
    get_chat_agent,
    get_fact_check_service,
    get_kafka_service,
    get_paper_analyzer,
    get_session_store,
    get_verdict_aggregator,
)
from scholarcheck.errors import InvalidRequestError
from scholarcheck.schemas.extraction import FinalVerdict
from scholarcheck.schemas.fact_check import (
    AnalysisOutcome,
    AnalyzeRequest,
    ChatRequest,
    DeepAnalysisJobRequest,
    DeepAnalysisJobResponse,
    FactCheckRunResponse,
    FactCheckSearchResponse,
    SessionCreateRequest,
    SessionCreateResponse,
    SessionResponse,
    StatementRequest,
    VerdictRequest,
)
from scholarcheck.services.fact_check_service import FactCheckService
from scholarcheck.services.kafka_service import KafkaService
from scholarcheck.services.session_service import SessionStore
from scholarcheck.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/fact-check", tags=["fact-check"])


@router.post("/search", response_model=FactCheckSearchResponse)
async def search_papers(
    request: StatementRequest,
    service: FactCheckService = Depends(get_fact_check_service),
) -> FactCheckSearchResponse:
    """
    Find and pre-evaluate papers for a statement.

    Builds an optimized query, walks the fallback ladder until papers are
    found and classifies every abstract against the statement.
    """
    logger.info("Search request received", statement_length=len(request.statement))

    result = await service.search(request.statement)

    return FactCheckSearchResponse(
        statement=result.statement,
        original_query=result.plan.query,
        optimized_query=result.plan.optimized_query,
        query_used=result.query_used,
        keywords=result.plan.keywords,
        search_terms=result.plan.search_terms,
        research_areas=result.plan.research_areas,
        total_results=result.total_count,
        papers=result.papers,
    )


@router.post("/verdict", response_model=FinalVerdict)
async def generate_verdict(
    request: VerdictRequest,
    aggregator: VerdictAggregatorAgent = Depends(get_verdict_aggregator),
) -> FinalVerdict:
    """Aggregate pre-evaluated papers into a final verdict."""
    logger.info("Verdict request received", paper_count=len(request.papers))
    papers = [paper.to_candidate() for paper in request.papers]
    return await aggregator.aggregate(request.statement, papers)


@router.post("/analyze", response_model=AnalysisOutcome)
async def analyze_paper(
    request: AnalyzeRequest,
    analyzer: DeepPaperAnalyzerAgent = Depends(get_paper_analyzer),
) -> AnalysisOutcome:
    """
    Deep-analyze one paper against the statement.

    Requires a pdfUrl or an abstract. Failures inside the fallback chain are
    reported in the response body, not as an error status.
    """
    logger.info("Analyze request received",
                paper_id=request.paper_id,
                has_pdf=bool(request.pdf_url),
                has_abstract=bool(request.abstract))
    return await analyzer.analyze(request.statement, request)


@router.post("/session", response_model=SessionCreateResponse)
def create_session(
    request: SessionCreateRequest,
    store: SessionStore = Depends(get_session_store),
) -> SessionCreateResponse:
    """Persist a completed fact-check and return its shareable id."""
    logger.info("Create session request", paper_count=len(request.papers))

    created = store.create(
        request.statement,
        request.keywords,
        request.final_verdict,
        request.papers,
        request.analysis_results,
    )

    return SessionCreateResponse(session_id=created.session_id, shareable_id=created.shareable_id)


@router.get("/session", response_model=SessionResponse)
def get_session(
    shareable_id: str = Query(..., alias="shareableId", min_length=1),
    store: SessionStore = Depends(get_session_store),
) -> SessionResponse:
    """Load a saved fact-check by its shareable id."""
    logger.info("Get session request", shareable_id=shareable_id)
    session = store.get(shareable_id)
    return SessionResponse(data=store.to_response(session))


@router.post(
    "/session/{shareable_id}/deep-analysis",
    response_model=DeepAnalysisJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def queue_deep_analysis(
    shareable_id: str,
    request: Optional[DeepAnalysisJobRequest] = None,
    store: SessionStore = Depends(get_session_store),
    kafka: KafkaService = Depends(get_kafka_service),
) -> DeepAnalysisJobResponse:
    """
    Queue batched deep analysis of a saved session's papers.

    The worker saves the session after every batch, so the shared link
    shows progress while the job runs.
    """
    store.get(shareable_id)

    job_id = uuid.uuid4()
    request = request or DeepAnalysisJobRequest()
    kafka.publish_deep_analysis_job(job_id, shareable_id, request.batch_size, request.refresh)

    logger.info("Deep-analysis job queued", job_id=str(job_id), shareable_id=shareable_id)

    return DeepAnalysisJobResponse(
        job_id=str(job_id),
        shareable_id=shareable_id,
        status="queued",
        message="Deep analysis queued",
    )


@router.post("/run", response_model=FactCheckRunResponse)
async def run_fact_check(
    request: StatementRequest,
    service: FactCheckService = Depends(get_fact_check_service),
) -> FactCheckRunResponse:
    """Run search, aggregation and persistence in one request."""
    logger.info("Run request received", statement_length=len(request.statement))

    result = await service.run(request.statement)

    return FactCheckRunResponse(
        statement=result.statement,
        stage=result.stage.value,
        keywords=result.plan.keywords,
        optimized_query=result.plan.optimized_query,
        total_results=result.total_count,
        papers=result.papers,
        final_verdict=result.final_verdict,
        session_id=result.session_id,
        shareable_id=result.shareable_id,
        message=result.message,
    )


@router.post("/chat")
async def chat(
    request: ChatRequest,
    store: SessionStore = Depends(get_session_store),
    agent: ChatAgent = Depends(get_chat_agent),
) -> StreamingResponse:
    """Stream an answer grounded in a saved session or directly supplied fact-check data."""
    if request.shareable_id:
        context = store.to_response(store.get(request.shareable_id)).model_dump(by_alias=True, mode="json")
    elif request.direct_data:
        context = request.direct_data
    else:
        raise InvalidRequestError("Either shareableId or directData is required")

    logger.info("Chat request received",
                message_count=len(request.messages),
                shareable_id=request.shareable_id)

    # First chunk is read before the response starts; a stream that fails to open raises here
    stream = agent.stream_answer(request.messages, context)
    try:
        first_chunk = await stream.__anext__()
    except StopAsyncIteration:
        first_chunk = ""

    async def body() -> AsyncIterator[str]:
        if first_chunk:
            yield first_chunk
        async for chunk in stream:
            yield chunk

    return StreamingResponse(body(), media_type="text/plain; charset=utf-8")
