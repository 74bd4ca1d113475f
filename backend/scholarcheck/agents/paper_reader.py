"""
AI agent that extracts reading structure from an uploaded paper PDF.
"""

import json
import re
from typing import List, Optional, Set

from scholarcheck.agents.base_agent import BaseAgent, ExtractionError, PdfDocument
from scholarcheck.schemas.extraction import (
    AcronymItem,
    AcronymList,
    FigureItem,
    FigureList,
    PaperInfo,
    ReferenceItem,
    ReferenceList,
    SectionBlock,
    SectionIndexAssignment,
    SectionIndexItem,
    SectionOutline,
)
from scholarcheck.utils.logger import get_logger
from scholarcheck.utils.retry import RetryExhaustedError, retry_with_backoff

logger = get_logger(__name__)

MAX_INDEX_ATTEMPTS = 3
MAX_FIGURE_ATTEMPTS = 3

FIGURE_MENTION = re.compile(r"\b(?:Fig(?:ure)?s?\.?)\s*(\d+)", re.IGNORECASE)
FIGURE_NUMBER = re.compile(r"\d+")


class PaperReaderAgent(BaseAgent):
    """Pulls metadata, sections, figures, acronyms and references out of a PDF."""

    async def extract_info(self, document: PdfDocument) -> PaperInfo:
        logger.info(f"[{self.agent_name}] Extracting paper info")
        return await self.extractor.extract(
            PaperInfo,
            "Extract the paper's title, the full list of authors, the publication date "
            "in ISO format (YYYY-MM-DD) if stated, and the abstract exactly as written.",
            document=document,
        )

    async def extract_sections(self, document: PdfDocument) -> List[SectionBlock]:
        logger.info(f"[{self.agent_name}] Extracting sections")
        outline = await self.extractor.extract(
            SectionOutline,
            """List every section and subsection of this paper in reading order.

For each section give:
- heading: the heading text exactly as written, including its numbering
- heading_number: only the numbering of the heading (e.g. "II.", "3.1", "A.2"), or null if unnumbered
- content: the full text of the section body, excluding its subsections

Skip the title block, the reference list and page headers or footers.""",
            document=document,
        )
        return outline.sections

    async def assign_section_indexes(self, sections: List[SectionBlock]) -> List[SectionIndexItem]:
        """
        Normalize heading numbers into hierarchical indexes like "1", "1.2", "2.3.1".

        Retried while any section is left without an index.

        Raises:
            ExtractionError: If indexes are still missing after the retries
        """
        if not sections:
            return []

        headings = [
            {"order_index": i, "heading": s.heading, "heading_number": s.heading_number}
            for i, s in enumerate(sections)
        ]
        prompt = f"""Assign a normalized hierarchical index to every heading below.

Rules:
- Top-level sections are numbered "1", "2", "3" in order; subsections "1.1", "1.2"; deeper levels "1.1.1".
- Convert roman numerals and letters to numbers ("II." becomes "2", "A.1" under section 3 becomes "3.1").
- Unnumbered headings (Abstract, Introduction, Conclusion, Acknowledgments) still receive the next index at their level.
- Return one item per heading, with the same order_index, and never leave section_index empty.

Headings:
{json.dumps(headings, indent=2)}"""

        def incomplete(result: SectionIndexAssignment) -> bool:
            assigned = {item.order_index for item in result.items if item.section_index}
            return any(i not in assigned for i in range(len(sections)))

        try:
            result = await retry_with_backoff(
                lambda: self.extractor.extract(SectionIndexAssignment, prompt),
                max_attempts=MAX_INDEX_ATTEMPTS,
                should_retry=incomplete,
                retry_on=(ExtractionError,),
                operation_name=f"{self.agent_name}.assign_section_indexes",
            )
        except RetryExhaustedError as e:
            raise ExtractionError(str(e))

        return sorted(result.items, key=lambda item: item.order_index)

    async def extract_acronyms(self, document: PdfDocument) -> List[AcronymItem]:
        logger.info(f"[{self.agent_name}] Extracting acronyms")
        result = await self.extractor.extract(
            AcronymList,
            """Identify the acronyms, abbreviations and technical jargon a general reader would not know.

For each item give:
- keyword: the term exactly as it appears in the text
- value: its full form or meaning (empty if it is not an abbreviation)
- explanation: a plain-language explanation with a brief real-life example

Do not repeat a keyword.""",
            document=document,
        )
        seen = set()
        unique = []
        for item in result.items:
            key = item.keyword.strip().lower()
            if key and key not in seen:
                seen.add(key)
                unique.append(item)
        return unique

    async def extract_references(self, document: PdfDocument) -> List[ReferenceItem]:
        logger.info(f"[{self.agent_name}] Extracting references")
        result = await self.extractor.extract(
            ReferenceList,
            "Extract every entry of the paper's reference list in order, with its title, "
            "authors, year, venue (journal or conference) and DOI when present.",
            document=document,
        )
        return result.items

    @staticmethod
    def referenced_figures(sections: List[SectionBlock]) -> Set[str]:
        """Figure numbers mentioned in the body text ("Figure 2", "Fig. 3")."""
        numbers = set()
        for section in sections:
            numbers.update(FIGURE_MENTION.findall(section.content or ""))
        return numbers

    @staticmethod
    def figure_key(figure_number: str) -> Optional[str]:
        match = FIGURE_NUMBER.search(figure_number)
        return match.group(0) if match else None

    async def extract_figures(self, document: PdfDocument, sections: List[SectionBlock]) -> List[FigureItem]:
        """
        List the paper's figures with caption, description and page.

        Retried while a figure mentioned in the text has no extracted entry.
        After the last attempt the figures that were found are kept.

        Raises:
            ExtractionError: If every attempt fails
        """
        logger.info(f"[{self.agent_name}] Extracting figures")
        expected = self.referenced_figures(sections)
        expected_line = (
            f"The text refers to these figure numbers, each must have an entry: {', '.join(sorted(expected, key=int))}\n\n"
            if expected else ""
        )
        prompt = f"""List every figure in this paper in the order it appears.

{expected_line}For each figure give:
- figure_number: only the number from its label ("2" for "Figure 2" or "Fig. 2")
- caption: the caption exactly as printed
- description: one or two plain-language sentences on what the figure shows
- page_number: the 1-based PDF page the figure appears on

Count multi-part figures (2a, 2b) as a single entry. Tables are not figures."""

        def unmatched(result: FigureList) -> bool:
            found = {self.figure_key(item.figure_number) for item in result.items}
            return bool(expected - found)

        try:
            result = await retry_with_backoff(
                lambda: self.extractor.extract(FigureList, prompt, document=document),
                max_attempts=MAX_FIGURE_ATTEMPTS,
                should_retry=unmatched,
                retry_on=(ExtractionError,),
                operation_name=f"{self.agent_name}.extract_figures",
            )
        except RetryExhaustedError as e:
            result = e.last_result
            found = {self.figure_key(item.figure_number) for item in result.items}
            logger.warning(f"[{self.agent_name}] Keeping partial figure list",
                           missing=sorted(expected - found))

        seen = set()
        figures = []
        for item in result.items:
            key = self.figure_key(item.figure_number)
            if key and key not in seen:
                seen.add(key)
                figures.append(item.model_copy(update={"figure_number": key}))
        return figures
