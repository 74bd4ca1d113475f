"""
SQLAlchemy models for uploaded papers in read mode.
"""

import uuid
from datetime import datetime

from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey, Uuid
from sqlalchemy.orm import relationship

from scholarcheck.db.database import Base
from scholarcheck.models.fact_check import JSONType


class PaperDocument(Base):
    """
    Database model for an uploaded PDF paper.

    Holds the stored file location, content hash for deduplication and the
    basic bibliographic information extracted from the document.
    """

    __tablename__ = "paper_documents"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    filename = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    content_hash = Column(String(64), nullable=False, unique=True, index=True)
    size_bytes = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)  # pending, processing, completed, failed
    title = Column(Text, nullable=True)
    authors = Column(JSONType, nullable=False, default=list)
    published_date = Column(String(50), nullable=True)
    abstract = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    uploaded_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    extracted_at = Column(DateTime, nullable=True)

    sections = relationship(
        "PaperSection",
        back_populates="paper",
        cascade="all, delete-orphan",
        order_by="PaperSection.order_index",
    )
    acronyms = relationship("PaperAcronym", back_populates="paper", cascade="all, delete-orphan")
    references = relationship(
        "PaperReference",
        back_populates="paper",
        cascade="all, delete-orphan",
        order_by="PaperReference.position",
    )
    figures = relationship(
        "PaperFigure",
        back_populates="paper",
        cascade="all, delete-orphan",
        order_by="PaperFigure.position",
    )

    def __repr__(self) -> str:
        return f"<PaperDocument(id={self.id}, filename='{self.filename}', status='{self.status}')>"


class PaperSection(Base):
    """One heading block of a paper with its normalized hierarchical index."""

    __tablename__ = "paper_sections"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    paper_id = Column(Uuid(as_uuid=True), ForeignKey("paper_documents.id", ondelete="CASCADE"), nullable=False, index=True)
    order_index = Column(Integer, nullable=False)
    heading = Column(Text, nullable=False)
    heading_number = Column(String(50), nullable=True)
    section_index = Column(String(50), nullable=True)  # e.g. "2.1.3"
    content = Column(Text, nullable=True)

    paper = relationship("PaperDocument", back_populates="sections")


class PaperAcronym(Base):
    __tablename__ = "paper_acronyms"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    paper_id = Column(Uuid(as_uuid=True), ForeignKey("paper_documents.id", ondelete="CASCADE"), nullable=False, index=True)
    keyword = Column(Text, nullable=False)
    value = Column(Text, nullable=False, default="")
    explanation = Column(Text, nullable=False, default="")

    paper = relationship("PaperDocument", back_populates="acronyms")


class PaperReference(Base):
    __tablename__ = "paper_references"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    paper_id = Column(Uuid(as_uuid=True), ForeignKey("paper_documents.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    title = Column(Text, nullable=False)
    authors = Column(JSONType, nullable=False, default=list)
    year = Column(String(10), nullable=True)
    venue = Column(Text, nullable=True)
    doi = Column(String(255), nullable=True)

    paper = relationship("PaperDocument", back_populates="references")


class PaperFigure(Base):
    __tablename__ = "paper_figures"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    paper_id = Column(Uuid(as_uuid=True), ForeignKey("paper_documents.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    figure_number = Column(String(20), nullable=False)
    caption = Column(Text, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    page_number = Column(Integer, nullable=True)

    paper = relationship("PaperDocument", back_populates="figures")
