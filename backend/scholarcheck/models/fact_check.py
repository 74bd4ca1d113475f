"""
SQLAlchemy models for fact-check sessions, their candidate papers and deep analyses.
"""

import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime, Text, Float, Integer, ForeignKey, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from scholarcheck.db.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class FactCheckSession(Base):
    """
    Root aggregate of one fact-check run.

    Written once when the run completes; only the analysis sub-tree of its
    papers is replaced afterwards, by deep-analysis batches.
    """

    __tablename__ = "fact_check_sessions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    shareable_id = Column(String(64), nullable=False, unique=True, index=True)
    statement = Column(Text, nullable=False)
    keywords = Column(JSONType, nullable=False, default=list)  # Ordered list of strings
    final_verdict = Column(JSONType, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    papers = relationship(
        "CandidatePaper",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="CandidatePaper.position",
    )

    def __repr__(self) -> str:
        return f"<FactCheckSession(id={self.id}, shareable_id='{self.shareable_id}')>"


class CandidatePaper(Base):
    """
    Database model for one academic work retrieved for a session.

    external_id is only unique within its session; the same work may appear
    in many sessions.
    """

    __tablename__ = "candidate_papers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    session_id = Column(Uuid(as_uuid=True), ForeignKey("fact_check_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    external_id = Column(String(500), nullable=False)
    title = Column(Text, nullable=True)
    authors = Column(JSONType, nullable=False, default=list)
    summary = Column(Text, nullable=True)
    published = Column(String(50), nullable=True)
    doi = Column(String(500), nullable=True)
    journal_name = Column(Text, nullable=True)
    publisher = Column(Text, nullable=True)
    relevance_score = Column(Float, nullable=True)
    cited_by_count = Column(Integer, nullable=True)
    links = Column(JSONType, nullable=True)  # Array of {href, type, rel}
    pre_eval_verdict = Column(String(20), nullable=True)  # supports, contradicts, neutral, not_relevant
    pre_eval_summary = Column(Text, nullable=True)
    pre_eval_snippet = Column(Text, nullable=True)

    session = relationship("FactCheckSession", back_populates="papers")
    analysis = relationship(
        "PaperAnalysis",
        back_populates="paper",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<CandidatePaper(id={self.id}, external_id='{self.external_id}')>"


class PaperAnalysis(Base):
    """
    Deep-analysis result for one candidate paper.

    confidence is stored on a 0.0 to 1.0 scale.
    """

    __tablename__ = "paper_analyses"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    paper_id = Column(Uuid(as_uuid=True), ForeignKey("candidate_papers.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    pdf_url = Column(Text, nullable=True)
    analysis_method = Column(String(30), nullable=True)
    support_level = Column(String(30), nullable=True)
    confidence = Column(Float, nullable=True)
    summary = Column(Text, nullable=True)
    relevant_sections = Column(JSONType, nullable=True)
    key_findings = Column(JSONType, nullable=False, default=list)
    limitations = Column(JSONType, nullable=False, default=list)
    error = Column(Text, nullable=True)
    analyzed_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    paper = relationship("CandidatePaper", back_populates="analysis")

    def __repr__(self) -> str:
        return f"<PaperAnalysis(id={self.id}, method='{self.analysis_method}', support_level='{self.support_level}')>"
