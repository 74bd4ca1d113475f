"""
Service layer for read mode: PDF upload, structure extraction and paginated reading.
"""

import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

import aiofiles
from fastapi import UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scholarcheck.agents.base_agent import ExtractionError, PdfDocument
from scholarcheck.agents.paper_reader import PaperReaderAgent
from scholarcheck.config import get_settings
from scholarcheck.models.paper import PaperAcronym, PaperDocument, PaperFigure, PaperReference, PaperSection
from scholarcheck.services.session_service import PersistenceError
from scholarcheck.utils.file_handler import FileValidationError, PdfFileValidator
from scholarcheck.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


class PaperNotFoundError(Exception):
    """Raised when an uploaded paper is not found in the database."""
    pass


class PaperReaderService:
    """
    Service class for read-mode papers.

    Stores uploaded PDFs with aiofiles, runs the extraction agent over them
    and serves the extracted structure.
    """

    def __init__(self, db: Session, reader: Optional[PaperReaderAgent] = None) -> None:
        self.db: Session = db
        self.reader = reader
        self.validator = PdfFileValidator()

    async def upload_paper(self, file: UploadFile) -> PaperDocument:
        """
        Validate and store an uploaded PDF.

        Re-uploading identical content returns the existing record.

        Raises:
            FileValidationError: If the file is not an acceptable PDF or cannot be stored
        """
        logger.info("Paper upload received", filename=file.filename, content_type=file.content_type)

        self.validator.validate_file_extension(file.filename, settings.allowed_extensions)
        content = await file.read()
        self.validator.validate_file_size(len(content), settings.max_file_size)
        self.validator.validate_pdf_content(content)

        content_hash = self.validator.calculate_content_hash(content)
        existing = self.db.query(PaperDocument).filter(PaperDocument.content_hash == content_hash).first()
        if existing:
            logger.info("Duplicate paper detected, returning existing record",
                        paper_id=existing.id,
                        content_hash=content_hash[:16])
            return existing

        file_path = os.path.join(settings.storage_path, f"{uuid.uuid4()}{Path(file.filename).suffix.lower()}")
        try:
            os.makedirs(settings.storage_path, exist_ok=True)
            async with aiofiles.open(file_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("File storage failed", filename=file.filename, error=str(e))
            raise FileValidationError(f"Failed to save file: {str(e)}")

        paper = PaperDocument(
            filename=file.filename,
            file_path=file_path,
            content_hash=content_hash,
            size_bytes=len(content),
            status="pending",
        )
        try:
            self.db.add(paper)
            self.db.commit()
            self.db.refresh(paper)
        except SQLAlchemyError as e:
            self.db.rollback()
            if os.path.exists(file_path):
                os.remove(file_path)
            logger.error("Failed to create paper record", filename=file.filename, error=str(e))
            raise PersistenceError("Failed to save uploaded paper")

        logger.info("Paper stored", paper_id=paper.id, size_bytes=paper.size_bytes)
        return paper

    def get_paper(self, paper_id: uuid.UUID) -> PaperDocument:
        paper = self.db.query(PaperDocument).filter(PaperDocument.id == paper_id).first()
        if not paper:
            raise PaperNotFoundError(f"Paper {paper_id} not found")
        return paper

    async def read_pdf(self, paper: PaperDocument) -> bytes:
        if not os.path.exists(paper.file_path):
            logger.error("Paper file missing", paper_id=paper.id, file_path=paper.file_path)
            raise PaperNotFoundError(f"Paper file not found: {paper.file_path}")
        async with aiofiles.open(paper.file_path, "rb") as f:
            return await f.read()

    async def extract_paper(self, paper_id: uuid.UUID) -> PaperDocument:
        """
        Extract info, sections, figures, acronyms and references, then persist them together.

        Status goes pending -> processing -> completed, or failed with the
        error recorded.

        Raises:
            PaperNotFoundError: If the paper or its file is missing
            ExtractionError: If any extraction step fails
        """
        if self.reader is None:
            raise RuntimeError("PaperReaderService was created without a reader agent")

        paper = self.get_paper(paper_id)
        paper.status = "processing"
        paper.error_message = None
        self.db.commit()

        try:
            document = PdfDocument.from_bytes(await self.read_pdf(paper))
            info = await self.reader.extract_info(document)
            sections = await self.reader.extract_sections(document)
            indexes = await self.reader.assign_section_indexes(sections)
            figures = await self.reader.extract_figures(document, sections)
            acronyms = await self.reader.extract_acronyms(document)
            references = await self.reader.extract_references(document)
        except (ExtractionError, PaperNotFoundError) as e:
            paper.status = "failed"
            paper.error_message = str(e)
            self.db.commit()
            logger.error("Paper extraction failed", paper_id=paper_id, error=str(e))
            raise

        index_by_order = {item.order_index: item.section_index for item in indexes}

        try:
            paper.sections.clear()
            paper.figures.clear()
            paper.acronyms.clear()
            paper.references.clear()
            self.db.flush()

            paper.title = info.title
            paper.authors = info.authors
            paper.published_date = info.published_date
            paper.abstract = info.abstract
            for order_index, section in enumerate(sections):
                paper.sections.append(PaperSection(
                    order_index=order_index,
                    heading=section.heading,
                    heading_number=section.heading_number,
                    section_index=index_by_order.get(order_index),
                    content=section.content,
                ))
            for position, figure in enumerate(figures):
                paper.figures.append(PaperFigure(
                    position=position,
                    figure_number=figure.figure_number,
                    caption=figure.caption,
                    description=figure.description,
                    page_number=figure.page_number,
                ))
            for item in acronyms:
                paper.acronyms.append(PaperAcronym(keyword=item.keyword, value=item.value, explanation=item.explanation))
            for position, item in enumerate(references):
                paper.references.append(PaperReference(
                    position=position,
                    title=item.title,
                    authors=item.authors,
                    year=item.year,
                    venue=item.venue,
                    doi=item.doi,
                ))
            paper.status = "completed"
            paper.extracted_at = datetime.utcnow()
            self.db.commit()
            self.db.refresh(paper)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to save extracted structure", paper_id=paper_id, error=str(e))
            raise PersistenceError("Failed to save extracted paper structure")

        logger.info("Paper extraction completed",
                    paper_id=paper_id,
                    section_count=len(sections),
                    figure_count=len(figures),
                    acronym_count=len(acronyms),
                    reference_count=len(references))
        return paper

    def list_sections(self, paper_id: uuid.UUID, skip: int = 0, limit: int = 20) -> Tuple[List[PaperSection], int]:
        """
        Sections of a paper in reading order, paginated.

        Returns:
            Tuple of (section_list, total_count)
        """
        self.get_paper(paper_id)
        query = self.db.query(PaperSection).filter(PaperSection.paper_id == paper_id).order_by(PaperSection.order_index)
        total = query.count()
        sections = query.offset(skip).limit(limit).all()
        return sections, total

    def list_figures(self, paper_id: uuid.UUID) -> List[PaperFigure]:
        return list(self.get_paper(paper_id).figures)

    def list_acronyms(self, paper_id: uuid.UUID) -> List[PaperAcronym]:
        return list(self.get_paper(paper_id).acronyms)

    def list_references(self, paper_id: uuid.UUID) -> List[PaperReference]:
        return list(self.get_paper(paper_id).references)
