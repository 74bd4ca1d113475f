"""
API routes for paper discovery and read mode.
Handles arXiv search, PDF upload, structure extraction and reading.
"""

import uuid
from typing import List

from fastapi import APIRouter, Depends, File, Query, UploadFile

from scholarcheck.dependencies import get_arxiv_service, get_extracting_reader_service, get_paper_reader_service
from scholarcheck.schemas.reader import (
    PaperAcronymResponse,
    PaperDocumentResponse,
    PaperFigureResponse,
    PaperReferenceResponse,
    PaperSectionListResponse,
    PaperSectionResponse,
    PaperUploadResponse,
)
from scholarcheck.services.arxiv_service import ArxivService
from scholarcheck.services.openalex_service import SearchResult
from scholarcheck.services.paper_reader_service import PaperReaderService
from scholarcheck.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/papers", tags=["papers"])


@router.get("/arxiv", response_model=SearchResult)
async def search_arxiv(
    query: str = Query(..., min_length=1, description="arXiv search_query expression"),
    start: int = Query(0, ge=0),
    max_results: int = Query(10, ge=1, le=100),
    service: ArxivService = Depends(get_arxiv_service),
) -> SearchResult:
    """Search arXiv for papers."""
    return await service.search(query, start=start, max_results=max_results)


@router.post("/upload", response_model=PaperUploadResponse)
async def upload_paper(
    file: UploadFile = File(...),
    service: PaperReaderService = Depends(get_paper_reader_service),
) -> PaperUploadResponse:
    """
    Upload a PDF for read mode.

    Accepts .pdf files up to the configured size limit. Identical content
    returns the existing paper.
    """
    paper = await service.upload_paper(file)
    return PaperUploadResponse(
        paper_id=paper.id,
        filename=paper.filename,
        size_bytes=paper.size_bytes,
        message="Paper uploaded successfully",
    )


@router.post("/{paper_id}/extract", response_model=PaperDocumentResponse)
async def extract_paper(
    paper_id: uuid.UUID,
    service: PaperReaderService = Depends(get_extracting_reader_service),
) -> PaperDocumentResponse:
    """Extract title, sections, figures, acronyms and references from an uploaded paper."""
    logger.info("Extract paper request", paper_id=paper_id)
    paper = await service.extract_paper(paper_id)
    return PaperDocumentResponse.model_validate(paper)


@router.get("/{paper_id}", response_model=PaperDocumentResponse)
def get_paper(
    paper_id: uuid.UUID,
    service: PaperReaderService = Depends(get_paper_reader_service),
) -> PaperDocumentResponse:
    return PaperDocumentResponse.model_validate(service.get_paper(paper_id))


@router.get("/{paper_id}/sections", response_model=PaperSectionListResponse)
def list_sections(
    paper_id: uuid.UUID,
    page: int = Query(1, ge=1, description="Page number starting from 1"),
    per_page: int = Query(20, ge=1, le=100, description="Items per page (max 100)"),
    service: PaperReaderService = Depends(get_paper_reader_service),
) -> PaperSectionListResponse:
    """Sections in reading order, paginated."""
    sections, total = service.list_sections(paper_id, skip=(page - 1) * per_page, limit=per_page)
    return PaperSectionListResponse(
        sections=[PaperSectionResponse.model_validate(s) for s in sections],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{paper_id}/figures", response_model=List[PaperFigureResponse])
def list_figures(
    paper_id: uuid.UUID,
    service: PaperReaderService = Depends(get_paper_reader_service),
) -> List[PaperFigureResponse]:
    return [PaperFigureResponse.model_validate(f) for f in service.list_figures(paper_id)]


@router.get("/{paper_id}/acronyms", response_model=List[PaperAcronymResponse])
def list_acronyms(
    paper_id: uuid.UUID,
    service: PaperReaderService = Depends(get_paper_reader_service),
) -> List[PaperAcronymResponse]:
    return [PaperAcronymResponse.model_validate(a) for a in service.list_acronyms(paper_id)]


@router.get("/{paper_id}/references", response_model=List[PaperReferenceResponse])
def list_references(
    paper_id: uuid.UUID,
    service: PaperReaderService = Depends(get_paper_reader_service),
) -> List[PaperReferenceResponse]:
    return [PaperReferenceResponse.model_validate(r) for r in service.list_references(paper_id)]
