"""
Pipeline orchestration for academic fact-checks.

Runs query building, search, pre-evaluation, aggregation and persistence in
strict sequence, and the optional batched deep analysis of a saved session.
"""

import asyncio
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from scholarcheck.agents.base_agent import ExtractionError
from scholarcheck.agents.paper_analyzer import AnalysisInputError, DeepPaperAnalyzerAgent
from scholarcheck.agents.pre_evaluator import AbstractPreEvaluatorAgent
from scholarcheck.agents.query_builder import QueryBuilderAgent, SearchQueryPlan
from scholarcheck.agents.verdict_aggregator import NoUsableEvidenceError, VerdictAggregatorAgent
from scholarcheck.config import get_settings
from scholarcheck.schemas.extraction import FinalVerdict
from scholarcheck.schemas.fact_check import AnalyzeRequest, SessionData, SessionPaper
from scholarcheck.schemas.paper import NO_ABSTRACT, PDF_MIME_TYPE, CandidatePaperData
from scholarcheck.services.openalex_service import SearchError
from scholarcheck.services.paper_search_service import PaperSearchService
from scholarcheck.services.session_service import PersistenceError, SessionStore
from scholarcheck.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

NO_PAPERS_MESSAGE = "No relevant academic papers were found for this statement."


class PipelineStage(str, Enum):
    IDLE = "idle"
    BUILDING_QUERY = "building_query"
    SEARCHING = "searching"
    PRE_EVALUATING = "pre_evaluating"
    AGGREGATING = "aggregating"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class PipelineError(Exception):
    """A stage failed; the whole request fails with the stage and statement attached."""

    def __init__(self, stage: PipelineStage, statement: str, message: str) -> None:
        super().__init__(message)
        self.stage = stage
        self.statement = statement
        self.message = message


class SearchStageResult(BaseModel):
    statement: str
    plan: SearchQueryPlan
    papers: List[CandidatePaperData]
    total_count: int
    query_used: Optional[str] = None


class FactCheckRunResult(BaseModel):
    statement: str
    stage: PipelineStage
    plan: SearchQueryPlan
    papers: List[CandidatePaperData]
    total_count: int
    final_verdict: Optional[FinalVerdict] = None
    session_id: Optional[str] = None
    shareable_id: Optional[str] = None
    message: Optional[str] = None


class DeepAnalysisSummary(BaseModel):
    shareable_id: str
    analyzed: int = 0
    failed: int = 0
    skipped: int = 0
    already_analyzed: int = 0
    batches: int = 0
    cancelled: bool = False


def analysis_request_for(statement: str, paper: SessionPaper) -> Optional[AnalyzeRequest]:
    """Build a deep-analysis input for a stored paper, or None if it has no PDF link and no abstract."""
    pdf_url = None
    for link in paper.links or []:
        if link.get("type") == PDF_MIME_TYPE and link.get("href"):
            pdf_url = link["href"]
            break

    abstract = paper.summary if paper.summary and paper.summary != NO_ABSTRACT else None
    if not pdf_url and not abstract:
        return None

    return AnalyzeRequest(
        statement=statement,
        pdf_url=pdf_url,
        paper_title=paper.title,
        paper_id=paper.id,
        abstract=abstract,
        authors=paper.authors,
        journal=paper.journal_name,
    )


class FactCheckService:
    """
    Orchestrates one fact-check request.

    ``stage_history`` lists every stage entered by the latest call, ending in
    ``done`` or ``failed``.
    """

    def __init__(
        self,
        store: SessionStore,
        query_builder: QueryBuilderAgent,
        search_service: PaperSearchService,
        pre_evaluator: AbstractPreEvaluatorAgent,
        aggregator: VerdictAggregatorAgent,
        analyzer: Optional[DeepPaperAnalyzerAgent] = None,
    ) -> None:
        self.store = store
        self.query_builder = query_builder
        self.search_service = search_service
        self.pre_evaluator = pre_evaluator
        self.aggregator = aggregator
        self.analyzer = analyzer
        self.stage_history: List[PipelineStage] = []

    @property
    def stage(self) -> PipelineStage:
        return self.stage_history[-1] if self.stage_history else PipelineStage.IDLE

    def _enter(self, stage: PipelineStage, statement: str) -> None:
        self.stage_history.append(stage)
        logger.info("Pipeline stage entered", stage=stage.value, statement_length=len(statement))

    def _fail(self, stage: PipelineStage, statement: str, error: Exception) -> PipelineError:
        self.stage_history.append(PipelineStage.FAILED)
        logger.error("Pipeline stage failed", stage=stage.value, error=str(error))
        return PipelineError(stage, statement, f"Fact-check failed while {stage.value.replace('_', ' ')}: {str(error)}")

    async def search(self, statement: str) -> SearchStageResult:
        """
        Build the query, search with fallbacks and pre-evaluate every paper.

        Raises:
            PipelineError: If query building or searching fails
        """
        self.stage_history = [PipelineStage.IDLE]
        return await self._search(statement)

    async def _search(self, statement: str) -> SearchStageResult:
        self._enter(PipelineStage.BUILDING_QUERY, statement)
        try:
            plan = await self.query_builder.build_query(statement)
        except ExtractionError as e:
            raise self._fail(PipelineStage.BUILDING_QUERY, statement, e) from e

        self._enter(PipelineStage.SEARCHING, statement)
        try:
            outcome = await self.search_service.search_with_fallbacks(plan)
        except SearchError as e:
            raise self._fail(PipelineStage.SEARCHING, statement, e) from e

        papers = outcome.papers
        if papers:
            self._enter(PipelineStage.PRE_EVALUATING, statement)
            evaluations = await self.pre_evaluator.pre_evaluate_all(statement, papers)
            papers = [
                paper.model_copy(update={"pre_evaluation": evaluation})
                for paper, evaluation in zip(papers, evaluations)
            ]

        return SearchStageResult(
            statement=statement,
            plan=plan,
            papers=papers,
            total_count=outcome.total_count,
            query_used=outcome.query_used,
        )

    async def run(self, statement: str) -> FactCheckRunResult:
        """
        Run the whole pipeline and persist the session.

        Zero papers after every fallback ends the run in ``done`` without
        aggregation or persistence.

        Raises:
            PipelineError: If any stage fails
        """
        self.stage_history = [PipelineStage.IDLE]
        searched = await self._search(statement)

        if not searched.papers:
            self._enter(PipelineStage.DONE, statement)
            logger.info("Fact-check finished without papers")
            return FactCheckRunResult(
                statement=statement,
                stage=PipelineStage.DONE,
                plan=searched.plan,
                papers=[],
                total_count=0,
                message=NO_PAPERS_MESSAGE,
            )

        self._enter(PipelineStage.AGGREGATING, statement)
        try:
            verdict = await self.aggregator.aggregate(statement, searched.papers)
        except (NoUsableEvidenceError, ExtractionError) as e:
            raise self._fail(PipelineStage.AGGREGATING, statement, e) from e

        self._enter(PipelineStage.PERSISTING, statement)
        try:
            created = await asyncio.to_thread(
                self.store.create,
                statement,
                searched.plan.keywords,
                verdict.model_dump(),
                [paper.model_dump(by_alias=True) for paper in searched.papers],
                {},
            )
        except PersistenceError as e:
            raise self._fail(PipelineStage.PERSISTING, statement, e) from e

        self._enter(PipelineStage.DONE, statement)
        return FactCheckRunResult(
            statement=statement,
            stage=PipelineStage.DONE,
            plan=searched.plan,
            papers=searched.papers,
            total_count=searched.total_count,
            final_verdict=verdict,
            session_id=created.session_id,
            shareable_id=created.shareable_id,
        )

    def _load_session(self, shareable_id: str) -> Tuple[SessionData, Dict[str, Any]]:
        session = self.store.get(shareable_id)
        return self.store.to_response(session), self.store.analysis_results(session)

    async def run_deep_analysis(
        self,
        shareable_id: str,
        batch_size: Optional[int] = None,
        delay_seconds: Optional[float] = None,
        refresh: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> DeepAnalysisSummary:
        """
        Deep-analyze a saved session's papers in sequential batches.

        Papers are analyzed one at a time with a pacing delay between them.
        After each batch the session's analyses are saved in full. Setting
        ``cancel_event`` stops the loop before the next paper; analyses
        finished so far are still saved.

        Papers that already have a stored analysis are skipped unless
        ``refresh`` is set. Papers whose stored attempt failed are retried.

        Raises:
            SessionNotFoundError: If the session does not exist
            PersistenceError: If saving a batch fails
        """
        if self.analyzer is None:
            raise RuntimeError("FactCheckService was created without a paper analyzer")

        batch_size = batch_size or settings.deep_analysis_batch_size
        delay_seconds = settings.deep_analysis_delay_seconds if delay_seconds is None else delay_seconds

        data, results = await asyncio.to_thread(self._load_session, shareable_id)
        summary = DeepAnalysisSummary(shareable_id=shareable_id)

        requests = []
        for paper in data.papers:
            if not refresh and (results.get(paper.id) or {}).get("analysis"):
                summary.already_analyzed += 1
                continue
            request = analysis_request_for(data.statement, paper)
            if request is None:
                summary.skipped += 1
            else:
                requests.append(request)

        logger.info("Deep analysis started",
                    shareable_id=shareable_id,
                    paper_count=len(requests),
                    skipped=summary.skipped,
                    already_analyzed=summary.already_analyzed,
                    refresh=refresh,
                    batch_size=batch_size)

        processed = 0
        for start in range(0, len(requests), batch_size):
            batch = requests[start:start + batch_size]
            batch_done = 0

            for request in batch:
                if cancel_event is not None and cancel_event.is_set():
                    summary.cancelled = True
                    break
                if processed > 0 and delay_seconds > 0:
                    await asyncio.sleep(delay_seconds)

                try:
                    outcome = await self.analyzer.analyze(data.statement, request)
                except AnalysisInputError as e:
                    logger.warning("Paper skipped", paper_id=request.paper_id, error=str(e))
                    summary.skipped += 1
                    processed += 1
                    continue

                results[request.paper_id] = outcome.model_dump(by_alias=True, mode="json")
                if outcome.analysis is not None:
                    summary.analyzed += 1
                else:
                    summary.failed += 1
                processed += 1
                batch_done += 1

            if batch_done:
                await asyncio.to_thread(self.store.save_analyses, shareable_id, results)
                summary.batches += 1
                logger.info("Deep analysis batch saved",
                            shareable_id=shareable_id,
                            batch=summary.batches,
                            analyzed=summary.analyzed,
                            failed=summary.failed)

            if summary.cancelled:
                logger.info("Deep analysis cancelled", shareable_id=shareable_id, processed=processed)
                break

        logger.info("Deep analysis finished", **summary.model_dump())
        return summary
