"""
AI agent for PDF-grounded analysis of a single paper against a statement.
"""

from typing import List, Optional, Union

from scholarcheck.agents.base_agent import (
    BaseAgent,
    DocumentAccessDeniedError,
    ExtractionError,
    PdfDocument,
    StructuredExtractor,
)
from scholarcheck.schemas.extraction import PaperAnalysisResult
from scholarcheck.schemas.fact_check import AnalysisOutcome, AnalyzeRequest
from scholarcheck.schemas.paper import NO_ABSTRACT
from scholarcheck.services.pdf_fetcher import AccessDeniedError, PdfFetcher, PdfFetchError
from scholarcheck.utils.logger import get_logger

logger = get_logger(__name__)


class AnalysisInputError(ValueError):
    """Raised when a paper has neither a PDF URL nor an abstract."""
    pass


class DeepPaperAnalyzerAgent(BaseAgent):
    """
    Analyzes a paper in depth, falling back from PDF to abstract.

    Order of attempts:
        1. the PDF URL passed straight to the model (pdf_direct_url)
        2. on access denial, the PDF downloaded here and sent as bytes (pdf_manual_fetch)
        3. otherwise the abstract as plain text (abstract_fallback)
        4. with no abstract, a terminal outcome with ``analysis=None``

    Papers with no PDF URL go straight to abstract analysis (abstract_only).
    Per-paper failures never raise; only missing input does.
    """

    def __init__(self, extractor: Optional[StructuredExtractor] = None, fetcher: Optional[PdfFetcher] = None) -> None:
        super().__init__(extractor)
        self.fetcher = fetcher or PdfFetcher()

    async def analyze(self, statement: str, paper: AnalyzeRequest) -> AnalysisOutcome:
        """
        Analyze one paper.

        Args:
            statement: The claim being checked
            paper: PDF URL, abstract and descriptive metadata

        Returns:
            AnalysisOutcome with either ``analysis`` or ``error`` populated

        Raises:
            AnalysisInputError: If the paper has neither a PDF URL nor an abstract
        """
        abstract = self._usable_abstract(paper.abstract)
        if not paper.pdf_url and not abstract:
            raise AnalysisInputError("Either pdfUrl or abstract is required for analysis")

        paper_id = paper.paper_id or paper.pdf_url or paper.paper_title or "unknown"

        def outcome(**kwargs) -> AnalysisOutcome:
            return AnalysisOutcome(paper_id=paper_id, pdf_url=paper.pdf_url, statement=statement, **kwargs)

        if not paper.pdf_url:
            logger.info(f"[{self.agent_name}] No PDF URL, analyzing abstract", paper_id=paper_id)
            return await self._abstract_outcome(statement, paper, abstract, "abstract_only", outcome)

        prompt = self._pdf_prompt(statement, paper)

        try:
            analysis = await self.extractor.extract(
                PaperAnalysisResult, prompt, document=PdfDocument.from_url(paper.pdf_url)
            )
            logger.info(f"[{self.agent_name}] Direct PDF analysis complete", paper_id=paper_id)
            return outcome(analysis_method="pdf_direct_url", analysis=analysis)

        except DocumentAccessDeniedError as e:
            logger.warning(f"[{self.agent_name}] Direct PDF access denied, fetching manually",
                           paper_id=paper_id, error=str(e))
            error_kind = "access_denied"
            last_error = str(e)

            try:
                pdf_bytes = await self.fetcher.fetch(paper.pdf_url)
                analysis = await self.extractor.extract(
                    PaperAnalysisResult, prompt, document=PdfDocument.from_bytes(pdf_bytes)
                )
                logger.info(f"[{self.agent_name}] Manual PDF analysis complete", paper_id=paper_id)
                return outcome(analysis_method="pdf_manual_fetch", analysis=analysis)

            except AccessDeniedError as fetch_error:
                last_error = str(fetch_error)
            except (PdfFetchError, ExtractionError) as fetch_error:
                error_kind = "transport"
                last_error = str(fetch_error)

            logger.warning(f"[{self.agent_name}] Manual PDF analysis failed", paper_id=paper_id, error=last_error)

        except ExtractionError as e:
            logger.warning(f"[{self.agent_name}] Direct PDF analysis failed", paper_id=paper_id, error=str(e))
            error_kind = "transport"
            last_error = str(e)

        if abstract:
            return await self._abstract_outcome(statement, paper, abstract, "abstract_fallback", outcome)

        logger.error(f"[{self.agent_name}] No fallback available", paper_id=paper_id, error=last_error)
        return outcome(
            analysis=None,
            error=f"PDF analysis failed and no abstract is available: {last_error}",
            error_kind=error_kind,
        )

    async def _abstract_outcome(self, statement, paper, abstract, method, outcome) -> AnalysisOutcome:
        try:
            analysis = await self.extractor.extract(
                PaperAnalysisResult, self._abstract_prompt(statement, paper, abstract)
            )
        except ExtractionError as e:
            logger.error(f"[{self.agent_name}] Abstract analysis failed", method=method, error=str(e))
            return outcome(analysis_method=method, analysis=None, error=str(e), error_kind="transport")

        logger.info(f"[{self.agent_name}] Abstract analysis complete", method=method)
        return outcome(analysis_method=method, analysis=analysis)

    @staticmethod
    def _usable_abstract(abstract: Optional[str]) -> Optional[str]:
        if not abstract or not abstract.strip() or abstract == NO_ABSTRACT:
            return None
        return abstract

    @staticmethod
    def _format_authors(authors: Optional[Union[List[str], str]]) -> str:
        if not authors:
            return "Unknown"
        if isinstance(authors, str):
            return authors
        return ", ".join(authors)

    def _pdf_prompt(self, statement: str, paper: AnalyzeRequest) -> str:
        return f"""You are an expert research analyst. Analyze this academic paper in relation to the following statement:

STATEMENT TO ANALYZE: "{statement}"

PAPER TITLE: {paper.paper_title or "Unknown"}
AUTHORS: {self._format_authors(paper.authors)}
JOURNAL: {paper.journal or "Unknown"}

Read the full paper and provide a comprehensive analysis:

1. SUPPORT LEVEL: Choose exactly one of strongly_supports, supports, neutral, contradicts, strongly_contradicts, insufficient_data.
2. RELEVANT SECTIONS: Quote exact passages that relate to the statement. For each, give the section title if available, the exact text, the page number if identifiable, and why it is relevant.
3. CONFIDENCE: A number from 0.0 to 1.0 expressing how certain you are of the support level.
4. SUMMARY: A clear summary of how the paper relates to the statement.
5. KEY FINDINGS: The main findings relevant to the statement.
6. LIMITATIONS: Study limitations that might affect the conclusions.

Be thorough and precise. Only quote text that actually appears in the paper."""

    def _abstract_prompt(self, statement: str, paper: AnalyzeRequest, abstract: str) -> str:
        return f"""You are an expert research analyst. Analyze this academic paper abstract in relation to the following statement:

STATEMENT TO ANALYZE: "{statement}"

PAPER TITLE: {paper.paper_title or "Unknown"}
AUTHORS: {self._format_authors(paper.authors)}
JOURNAL: {paper.journal or "Unknown"}

ABSTRACT:
{abstract}

Only the abstract is available, not the full paper. Provide an analysis with:

1. SUPPORT LEVEL: Choose exactly one of strongly_supports, supports, neutral, contradicts, strongly_contradicts, insufficient_data.
2. RELEVANT SECTIONS: Quote exact sentences from the abstract that relate to the statement, using "Abstract" as the section title.
3. CONFIDENCE: A number from 0.0 to 1.0. Keep it moderate, since an abstract omits methods and detailed results.
4. SUMMARY: How the abstract relates to the statement.
5. KEY FINDINGS: The main findings stated in the abstract.
6. LIMITATIONS: Include that the analysis is based on the abstract only, plus any limitations the abstract mentions."""
