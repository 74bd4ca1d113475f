"""
Pydantic schemas for read-mode API responses.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class PaperDocumentResponse(BaseModel):
    """Schema for uploaded paper metadata."""
    id: uuid.UUID
    filename: str
    size_bytes: int
    status: str
    title: Optional[str] = None
    authors: List[str] = []
    published_date: Optional[str] = None
    abstract: Optional[str] = None
    error_message: Optional[str] = None
    uploaded_at: datetime
    extracted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaperUploadResponse(BaseModel):
    paper_id: uuid.UUID
    filename: str
    size_bytes: int
    message: str


class PaperSectionResponse(BaseModel):
    order_index: int
    heading: str
    heading_number: Optional[str] = None
    section_index: Optional[str] = None
    content: Optional[str] = None

    class Config:
        from_attributes = True


class PaperSectionListResponse(BaseModel):
    sections: List[PaperSectionResponse]
    total: int
    page: int
    per_page: int


class PaperAcronymResponse(BaseModel):
    keyword: str
    value: str
    explanation: str

    class Config:
        from_attributes = True


class PaperReferenceResponse(BaseModel):
    position: int
    title: str
    authors: List[str] = []
    year: Optional[str] = None
    venue: Optional[str] = None
    doi: Optional[str] = None

    class Config:
        from_attributes = True


class PaperFigureResponse(BaseModel):
    position: int
    figure_number: str
    caption: str
    description: str
    page_number: Optional[int] = None

    class Config:
        from_attributes = True
