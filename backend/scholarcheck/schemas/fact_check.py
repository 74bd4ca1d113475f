"""
Pydantic schemas for fact-check API requests and responses.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from scholarcheck.schemas.extraction import AnalysisMethod, FinalVerdict, PaperAnalysisResult
from scholarcheck.schemas.paper import CandidatePaperData, PaperLink, PreEvaluation

AnalysisErrorKind = Literal["access_denied", "transport", "no_fallback_available"]


class StatementRequest(BaseModel):
    """Schema for requests that only carry a statement."""
    statement: str = Field(..., min_length=1)

    @field_validator("statement")
    @classmethod
    def statement_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Statement is required")
        return value.strip()


class FactCheckSearchResponse(BaseModel):
    """Schema for the search + pre-evaluation stage response."""
    statement: str
    original_query: str = Field(..., alias="originalQuery")
    optimized_query: str = Field(..., alias="optimizedQuery")
    query_used: Optional[str] = Field(None, alias="queryUsed")
    keywords: List[str]
    search_terms: List[str] = Field(..., alias="searchTerms")
    research_areas: List[str] = Field(..., alias="researchAreas")
    total_results: int = Field(..., alias="totalResults")
    papers: List[CandidatePaperData]

    class Config:
        populate_by_name = True


class VerdictPaperInput(BaseModel):
    """
    A paper submitted for aggregation.

    Papers with a missing or incomplete pre-evaluation are accepted here and
    dropped by the aggregator.
    """
    id: Optional[str] = None
    title: Optional[str] = None
    summary: Optional[str] = None
    published: Optional[str] = None
    authors: List[str] = []
    doi: Optional[str] = None
    links: List[PaperLink] = []
    relevance_score: Optional[float] = None
    publication_year: Optional[int] = None
    cited_by_count: Optional[int] = None
    journal_name: Optional[str] = None
    publisher: Optional[str] = None
    pre_evaluation: Optional[Dict[str, Any]] = None

    def to_candidate(self) -> CandidatePaperData:
        evaluation = None
        if self.pre_evaluation:
            fields = {k: v for k, v in self.pre_evaluation.items() if v is not None}
            try:
                evaluation = PreEvaluation.model_validate(fields)
            except ValidationError:
                evaluation = None

        return CandidatePaperData(
            **self.model_dump(exclude={"id", "links", "pre_evaluation"}),
            id=self.id or f"unknown-{uuid.uuid4().hex}",
            links=self.links,
            pre_evaluation=evaluation,
        )


class VerdictRequest(BaseModel):
    statement: str = Field(..., min_length=1)
    papers: List[VerdictPaperInput]


class AnalyzeRequest(BaseModel):
    """Schema for single-paper deep analysis."""
    statement: str = Field(..., min_length=1)
    pdf_url: Optional[str] = Field(None, alias="pdfUrl")
    paper_title: Optional[str] = Field(None, alias="paperTitle")
    paper_id: Optional[str] = Field(None, alias="paperId")
    abstract: Optional[str] = None
    authors: Optional[Union[List[str], str]] = None
    journal: Optional[str] = None

    class Config:
        populate_by_name = True


class AnalysisOutcome(BaseModel):
    """
    Result of deep analysis for one paper.

    Exactly one of ``analysis`` or ``error`` is populated. ``analysis_method``
    records which branch of the fallback chain produced the analysis.
    """
    paper_id: str = Field(..., alias="paperId")
    pdf_url: Optional[str] = Field(None, alias="pdfUrl")
    statement: str
    analysis_method: Optional[AnalysisMethod] = Field(None, alias="analysisMethod")
    analysis: Optional[PaperAnalysisResult] = None
    error: Optional[str] = None
    error_kind: Optional[AnalysisErrorKind] = Field(None, alias="errorKind")
    analyzed_at: datetime = Field(default_factory=datetime.utcnow, alias="analyzedAt")

    class Config:
        populate_by_name = True


class SessionCreateRequest(BaseModel):
    """
    Schema for persisting a fact-check session.

    Papers and analysis results are accepted as loose mappings; the session
    store sanitizes each field before writing.
    """
    statement: str = Field(..., min_length=1)
    keywords: List[Any] = []
    final_verdict: Optional[Dict[str, Any]] = Field(None, alias="finalVerdict")
    papers: List[Dict[str, Any]]
    analysis_results: Optional[Dict[str, Dict[str, Any]]] = Field(None, alias="analysisResults")

    class Config:
        populate_by_name = True


class SessionCreateResponse(BaseModel):
    success: bool = True
    session_id: str = Field(..., alias="sessionId")
    shareable_id: str = Field(..., alias="shareableId")
    message: str = "Fact-check session saved successfully"

    class Config:
        populate_by_name = True


class StoredPreEvaluation(BaseModel):
    verdict: Optional[str] = None
    summary: Optional[str] = None
    snippet: Optional[str] = None


class StoredAnalysisDetail(BaseModel):
    support_level: Optional[str] = None
    confidence: Optional[float] = None
    summary: Optional[str] = None
    relevant_sections: Optional[List[Dict[str, Any]]] = None
    key_findings: List[str] = []
    limitations: List[str] = []


class StoredAnalysis(BaseModel):
    pdf_url: Optional[str] = Field(None, alias="pdfUrl")
    analysis_method: Optional[str] = Field(None, alias="analysisMethod")
    analysis: Optional[StoredAnalysisDetail] = None
    error: Optional[str] = None

    class Config:
        populate_by_name = True


class SessionPaper(BaseModel):
    """A persisted paper, keyed by its external identifier."""
    id: str
    title: Optional[str] = None
    authors: List[str] = []
    summary: Optional[str] = None
    published: Optional[str] = None
    doi: Optional[str] = None
    journal_name: Optional[str] = None
    publisher: Optional[str] = None
    relevance_score: Optional[float] = None
    cited_by_count: Optional[int] = None
    links: Optional[List[Dict[str, Any]]] = None
    pre_evaluation: Optional[StoredPreEvaluation] = None
    analysis: Optional[StoredAnalysis] = None


class SessionData(BaseModel):
    shareable_id: str = Field(..., alias="shareableId")
    statement: str
    keywords: List[str]
    final_verdict: Optional[Dict[str, Any]] = Field(None, alias="finalVerdict")
    created_at: datetime = Field(..., alias="createdAt")
    papers: List[SessionPaper]

    class Config:
        populate_by_name = True


class SessionResponse(BaseModel):
    success: bool = True
    data: SessionData


class FactCheckRunResponse(BaseModel):
    """Schema for the full orchestrated pipeline response."""
    statement: str
    stage: str
    keywords: List[str]
    optimized_query: Optional[str] = Field(None, alias="optimizedQuery")
    total_results: int = Field(0, alias="totalResults")
    papers: List[CandidatePaperData]
    final_verdict: Optional[FinalVerdict] = Field(None, alias="finalVerdict")
    session_id: Optional[str] = Field(None, alias="sessionId")
    shareable_id: Optional[str] = Field(None, alias="shareableId")
    message: Optional[str] = None

    class Config:
        populate_by_name = True


class DeepAnalysisJobRequest(BaseModel):
    batch_size: Optional[int] = Field(None, alias="batchSize", ge=1, le=50)
    refresh: bool = False

    class Config:
        populate_by_name = True


class DeepAnalysisJobResponse(BaseModel):
    job_id: str = Field(..., alias="jobId")
    shareable_id: str = Field(..., alias="shareableId")
    status: str
    message: str

    class Config:
        populate_by_name = True


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1)
    shareable_id: Optional[str] = Field(None, alias="shareableId")
    direct_data: Optional[Dict[str, Any]] = Field(None, alias="directData")

    class Config:
        populate_by_name = True
