"""
Pydantic value objects for academic papers moving through the fact-check pipeline.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

PreEvalVerdict = Literal["supports", "contradicts", "neutral", "not_relevant"]

NO_ABSTRACT = "No abstract available"
PDF_MIME_TYPE = "application/pdf"


class PaperLink(BaseModel):
    """A link to a representation of the paper (landing page, PDF)."""
    href: str
    mime_type: Optional[str] = Field(None, alias="type")
    relation: Optional[str] = Field(None, alias="rel")

    class Config:
        populate_by_name = True


class PreEvaluation(BaseModel):
    """Abstract-only stance of a paper toward the statement."""
    verdict: PreEvalVerdict = Field(..., description="Stance of the abstract toward the statement")
    summary: str = Field(..., description="1-2 sentence explanation of the verdict")
    snippet: str = Field(
        "",
        description="Verbatim quote from the abstract supporting the verdict, or an empty string",
    )


class CandidatePaperData(BaseModel):
    """One retrieved academic work, before persistence."""
    id: str
    title: Optional[str] = None
    summary: Optional[str] = None
    published: Optional[str] = None
    authors: List[str] = []
    doi: Optional[str] = None
    primary_category: Optional[str] = None
    categories: List[str] = []
    links: List[PaperLink] = []
    relevance_score: Optional[float] = None
    publication_year: Optional[int] = None
    cited_by_count: Optional[int] = None
    journal_name: Optional[str] = None
    publisher: Optional[str] = None
    pre_evaluation: Optional[PreEvaluation] = None

    @property
    def pdf_url(self) -> Optional[str]:
        """First link advertised as a PDF, if any."""
        for link in self.links:
            if link.mime_type == PDF_MIME_TYPE and link.href:
                return link.href
        return None

    @property
    def has_abstract(self) -> bool:
        return bool(self.summary) and self.summary != NO_ABSTRACT
