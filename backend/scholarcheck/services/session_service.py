"""
Service layer for persisting and retrieving fact-check sessions.
"""

import secrets
import uuid
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scholarcheck.config import get_settings
from scholarcheck.models.fact_check import CandidatePaper, FactCheckSession, PaperAnalysis
from scholarcheck.schemas.fact_check import (
    SessionData,
    SessionPaper,
    StoredAnalysis,
    StoredAnalysisDetail,
    StoredPreEvaluation,
)
from scholarcheck.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

PRE_EVAL_VERDICTS = {"supports", "contradicts", "neutral", "not_relevant"}


class SessionNotFoundError(Exception):
    """Raised when no session has the requested shareable id."""
    pass


class PersistenceError(Exception):
    """Raised when a session cannot be written."""
    pass


class SessionCreated(BaseModel):
    session_id: str
    shareable_id: str


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _as_str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _sanitize_links(value: Any) -> Optional[List[Dict[str, Any]]]:
    if not isinstance(value, list):
        return None
    links = []
    for link in value:
        if isinstance(link, Mapping) and isinstance(link.get("href"), str):
            links.append({
                "href": link["href"],
                "type": _as_str(_pick(link, "type", "mime_type")),
                "rel": _as_str(_pick(link, "rel", "relation")),
            })
    return links


def _sanitize_sections(value: Any) -> Optional[List[Dict[str, Any]]]:
    if not isinstance(value, list):
        return None
    sections = []
    for section in value:
        if not isinstance(section, Mapping):
            continue
        sections.append({
            "section_title": _as_str(section.get("section_title")),
            "text_snippet": _as_str(section.get("text_snippet")) or "",
            "page_number": _as_int(section.get("page_number")),
            "reasoning": _as_str(section.get("reasoning")) or "",
        })
    return sections


def sanitize_paper(data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Coerce one loosely-shaped paper to the stored field types.

    Wrongly-typed fields become None, or an empty list for list fields.
    A missing external id becomes an ``unknown-`` placeholder.
    """
    pre_evaluation = data.get("pre_evaluation")
    if not isinstance(pre_evaluation, Mapping):
        pre_evaluation = {}
    verdict = pre_evaluation.get("verdict")

    return {
        "external_id": _as_str(data.get("id")) or f"unknown-{uuid.uuid4().hex}",
        "title": _as_str(data.get("title")),
        "authors": _as_str_list(data.get("authors")),
        "summary": _as_str(data.get("summary")),
        "published": _as_str(data.get("published")),
        "doi": _as_str(data.get("doi")),
        "journal_name": _as_str(data.get("journal_name")),
        "publisher": _as_str(data.get("publisher")),
        "relevance_score": _as_float(data.get("relevance_score")),
        "cited_by_count": _as_int(data.get("cited_by_count")),
        "links": _sanitize_links(data.get("links")),
        "pre_eval_verdict": verdict if verdict in PRE_EVAL_VERDICTS else None,
        "pre_eval_summary": _as_str(pre_evaluation.get("summary")),
        "pre_eval_snippet": _as_str(pre_evaluation.get("snippet")),
    }


def sanitize_analysis(data: Any) -> Optional[Dict[str, Any]]:
    """
    Coerce one analysis result to stored field types.

    Accepts camelCase or snake_case keys. Returns None when there is neither
    an analysis body nor an error, so no empty record is written.
    """
    if not isinstance(data, Mapping):
        return None

    body = data.get("analysis")
    if not isinstance(body, Mapping):
        body = None
    error = _as_str(data.get("error"))
    if body is None and not error:
        return None

    body = body or {}
    confidence = _as_float(body.get("confidence"))
    if confidence is not None and not 0.0 <= confidence <= 1.0:
        confidence = None

    return {
        "pdf_url": _as_str(_pick(data, "pdfUrl", "pdf_url")),
        "analysis_method": _as_str(_pick(data, "analysisMethod", "analysis_method")),
        "support_level": _as_str(body.get("support_level")),
        "confidence": confidence,
        "summary": _as_str(body.get("summary")),
        "relevant_sections": _sanitize_sections(body.get("relevant_sections")),
        "key_findings": _as_str_list(body.get("key_findings")),
        "limitations": _as_str_list(body.get("limitations")),
        "error": error,
    }


class SessionStore:
    """
    Sole writer of persisted fact-check sessions.

    A session is written once with all its papers; afterwards only the
    analysis sub-tree is replaced, whole, through ``save_analyses``.
    """

    def __init__(self, db: Session) -> None:
        self.db: Session = db

    def create(
        self,
        statement: str,
        keywords: Sequence[Any],
        final_verdict: Optional[Mapping[str, Any]],
        papers: Sequence[Mapping[str, Any]],
        analysis_results: Optional[Mapping[str, Any]] = None,
    ) -> SessionCreated:
        """
        Persist a fact-check session in one transaction.

        Args:
            statement: The checked claim, truncated to the configured maximum
            keywords: Search keywords; non-strings are dropped
            final_verdict: Aggregated verdict, or None
            papers: Candidate papers in display order
            analysis_results: Deep-analysis results keyed by paper external id

        Returns:
            SessionCreated with the internal and shareable ids

        Raises:
            PersistenceError: If the write fails
        """
        analysis_results = analysis_results or {}
        truncated = statement[:settings.statement_max_length]

        session = FactCheckSession(
            shareable_id=secrets.token_urlsafe(16),
            statement=truncated,
            keywords=_as_str_list(list(keywords)),
            final_verdict=dict(final_verdict) if isinstance(final_verdict, Mapping) else None,
        )

        for position, raw in enumerate(papers):
            fields = sanitize_paper(raw if isinstance(raw, Mapping) else {})
            paper = CandidatePaper(position=position, **fields)
            analysis = sanitize_analysis(analysis_results.get(fields["external_id"]))
            if analysis is not None:
                paper.analysis = PaperAnalysis(**analysis)
            session.papers.append(paper)

        try:
            self.db.add(session)
            self.db.commit()
            self.db.refresh(session)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to save fact-check session", error=str(e))
            raise PersistenceError("Failed to save fact-check session")

        logger.info("Fact-check session saved",
                    session_id=str(session.id),
                    shareable_id=session.shareable_id,
                    paper_count=len(session.papers),
                    analysis_count=sum(1 for p in session.papers if p.analysis is not None),
                    statement_truncated=len(statement) > len(truncated))

        return SessionCreated(session_id=str(session.id), shareable_id=session.shareable_id)

    def get(self, shareable_id: str) -> FactCheckSession:
        """
        Load a session by its shareable id.

        Raises:
            SessionNotFoundError: If no session matches
        """
        session = self.db.query(FactCheckSession).filter(
            FactCheckSession.shareable_id == shareable_id
        ).first()
        if not session:
            raise SessionNotFoundError(f"Session with shareable id {shareable_id} not found")
        return session

    def save_analyses(self, shareable_id: str, analysis_results: Mapping[str, Any]) -> int:
        """
        Replace the analysis of every paper in the session in one transaction.

        Papers missing from ``analysis_results`` end up without an analysis,
        so callers pass the full accumulated map.

        Returns:
            Number of analyses stored

        Raises:
            SessionNotFoundError: If no session matches
            PersistenceError: If the write fails
        """
        session = self.get(shareable_id)
        stored = 0

        try:
            for paper in session.papers:
                paper.analysis = None
            self.db.flush()

            for paper in session.papers:
                analysis = sanitize_analysis(analysis_results.get(paper.external_id))
                if analysis is not None:
                    paper.analysis = PaperAnalysis(**analysis)
                    stored += 1

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to save paper analyses", shareable_id=shareable_id, error=str(e))
            raise PersistenceError("Failed to save paper analyses")

        logger.info("Paper analyses saved", shareable_id=shareable_id, analysis_count=stored)
        return stored

    @staticmethod
    def analysis_results(session: FactCheckSession) -> Dict[str, Dict[str, Any]]:
        """Stored analyses keyed by external id, in the shape ``save_analyses`` accepts."""
        results = {}
        for paper in session.papers:
            if paper.analysis is not None:
                results[paper.external_id] = StoredAnalysis.model_validate(
                    _stored_analysis(paper.analysis)
                ).model_dump(by_alias=True)
        return results

    @staticmethod
    def to_response(session: FactCheckSession) -> SessionData:
        """Serialize a session for clients. Internal ids are not exposed."""
        papers = []
        for paper in session.papers:
            pre_evaluation = None
            if paper.pre_eval_verdict or paper.pre_eval_summary:
                pre_evaluation = StoredPreEvaluation(
                    verdict=paper.pre_eval_verdict,
                    summary=paper.pre_eval_summary,
                    snippet=paper.pre_eval_snippet,
                )

            papers.append(SessionPaper(
                id=paper.external_id,
                title=paper.title,
                authors=paper.authors or [],
                summary=paper.summary,
                published=paper.published,
                doi=paper.doi,
                journal_name=paper.journal_name,
                publisher=paper.publisher,
                relevance_score=paper.relevance_score,
                cited_by_count=paper.cited_by_count,
                links=paper.links,
                pre_evaluation=pre_evaluation,
                analysis=(
                    StoredAnalysis.model_validate(_stored_analysis(paper.analysis))
                    if paper.analysis is not None else None
                ),
            ))

        return SessionData(
            shareable_id=session.shareable_id,
            statement=session.statement,
            keywords=session.keywords or [],
            final_verdict=session.final_verdict,
            created_at=session.created_at,
            papers=papers,
        )


def _stored_analysis(analysis: PaperAnalysis) -> Dict[str, Any]:
    detail = None
    if analysis.support_level is not None or analysis.summary is not None:
        detail = StoredAnalysisDetail(
            support_level=analysis.support_level,
            confidence=analysis.confidence,
            summary=analysis.summary,
            relevant_sections=analysis.relevant_sections,
            key_findings=analysis.key_findings or [],
            limitations=analysis.limitations or [],
        )
    return {
        "pdf_url": analysis.pdf_url,
        "analysis_method": analysis.analysis_method,
        "analysis": detail,
        "error": analysis.error,
    }
