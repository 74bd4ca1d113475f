"""
Schemas for structured model output.

Every model-facing contract is declared here and validated strictly at the
boundary in StructuredExtractor, so enum and numeric mismatches surface as
extraction failures instead of being coerced.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

SupportLevel = Literal[
    "strongly_supports",
    "supports",
    "neutral",
    "contradicts",
    "strongly_contradicts",
    "insufficient_data",
]

AnalysisMethod = Literal[
    "pdf_direct_url",
    "pdf_manual_fetch",
    "abstract_fallback",
    "abstract_only",
    "pdf_direct_analysis",
]

FinalVerdictCategory = Literal[
    "true",
    "mostly_true",
    "mixed_evidence",
    "mostly_false",
    "false",
    "insufficient_evidence",
]


class SearchTermsExtraction(BaseModel):
    """Concepts extracted from a statement for academic search."""
    query: str = Field(..., description="Primary search query string for OpenAlex")
    keywords: List[str] = Field(..., description="5-8 keywords for academic paper search")
    research_areas: List[str] = Field(..., description="Academic fields relevant to the statement")
    search_terms: List[str] = Field(..., description="Alternative search terms and synonyms")


class OptimizedQuery(BaseModel):
    optimized_query: str = Field(..., description="The optimized OpenAlex search query using Boolean operators")


class RelevantSection(BaseModel):
    section_title: Optional[str] = Field(None, description="Section title if available")
    text_snippet: str = Field(..., description="Exact text from the paper")
    page_number: Optional[int] = Field(None, description="Page number if identifiable")
    reasoning: str = Field(..., description="Why this section is relevant to the statement")


class PaperAnalysisResult(BaseModel):
    """Deep analysis of one paper. confidence uses a 0.0-1.0 scale."""
    support_level: SupportLevel = Field(..., description="How this paper relates to the statement")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Confidence in this analysis from 0.0 to 1.0")
    summary: str = Field(..., description="Clear summary of how the paper relates to the statement")
    relevant_sections: List[RelevantSection] = Field(
        ..., description="Specific sections that support or contradict the statement"
    )
    key_findings: List[str] = Field(..., description="Main findings relevant to the statement")
    limitations: List[str] = Field(..., description="Study limitations that might affect conclusions")


class FinalVerdict(BaseModel):
    """Aggregated verdict on a statement. confidence_score uses a 0-100 scale."""
    final_verdict: FinalVerdictCategory
    confidence_score: int = Field(..., ge=0, le=100)
    summary: str = Field(..., description="Bottom-line verdict in 1-2 sentences")
    reasoning: str = Field(..., description="3-4 sentence explanation of why the evidence leads to the verdict")
    supporting_evidence_count: int = Field(..., ge=0)
    contradicting_evidence_count: int = Field(..., ge=0)
    neutral_evidence_count: int = Field(..., ge=0)
    key_findings: List[str]
    limitations: List[str]


# Read mode


class PaperInfo(BaseModel):
    title: str
    authors: List[str] = []
    published_date: Optional[str] = Field(None, description="Publication date in ISO format (YYYY-MM-DD)")
    abstract: Optional[str] = None


class SectionBlock(BaseModel):
    heading: str = Field(..., description="Heading text exactly as written, including its numbering")
    heading_number: Optional[str] = Field(None, description="Raw numbering of the heading such as 'II.' or 'A.1'")
    content: Optional[str] = Field(None, description="Text of the section body")


class SectionOutline(BaseModel):
    sections: List[SectionBlock]


class SectionIndexItem(BaseModel):
    order_index: int
    section_index: Optional[str] = Field(None, description="Normalized numeric index such as '1', '1.1' or '2.3.4'")


class SectionIndexAssignment(BaseModel):
    items: List[SectionIndexItem]


class AcronymItem(BaseModel):
    keyword: str = Field(..., description="The term exactly as written in the text")
    value: str = Field("", description="Full form or meaning, empty if not applicable")
    explanation: str = Field("", description="Plain-language explanation with a brief real-life example")


class AcronymList(BaseModel):
    items: List[AcronymItem]


class ReferenceItem(BaseModel):
    title: str
    authors: List[str] = []
    year: Optional[str] = None
    venue: Optional[str] = None
    doi: Optional[str] = None


class ReferenceList(BaseModel):
    items: List[ReferenceItem]


class FigureItem(BaseModel):
    figure_number: str = Field(..., description="Number of the figure as labeled, e.g. '2' for 'Figure 2'")
    caption: str = Field("", description="Caption text exactly as printed")
    description: str = Field("", description="Plain-language description of what the figure shows")
    page_number: Optional[int] = Field(None, description="1-based PDF page the figure appears on")


class FigureList(BaseModel):
    items: List[FigureItem]
