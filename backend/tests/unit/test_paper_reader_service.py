"""
Tests for read mode: the PaperReaderAgent and PaperReaderService.
"""

import io
import os
import uuid
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi import UploadFile
from sqlalchemy.orm import Session

from scholarcheck.agents.base_agent import ExtractionError, PdfDocument
from scholarcheck.agents.paper_reader import PaperReaderAgent
from scholarcheck.schemas.extraction import (
    AcronymItem,
    AcronymList,
    FigureItem,
    FigureList,
    PaperInfo,
    ReferenceItem,
    SectionBlock,
    SectionIndexAssignment,
    SectionIndexItem,
)
from scholarcheck.services.paper_reader_service import PaperNotFoundError, PaperReaderService
from scholarcheck.utils.file_handler import FileValidationError

SECTIONS = [
    SectionBlock(heading="Abstract", heading_number=None, content="We study..."),
    SectionBlock(heading="I. Introduction", heading_number="I.", content="Depression is..."),
    SectionBlock(heading="A. Background", heading_number="A.", content="Vitamin D..."),
    SectionBlock(heading="II. Methods", heading_number="II.", content="We enrolled..."),
]

FIGURE_SECTIONS = [
    SectionBlock(heading="Results", heading_number="3.", content="Enrollment is shown in Figure 1 and effects in Fig. 2."),
    SectionBlock(heading="Discussion", heading_number="4.", content="As figure 2 suggests, the effect is modest."),
]


def upload(content: bytes, filename: str = "paper.pdf") -> UploadFile:
    return UploadFile(file=io.BytesIO(content), filename=filename)


class TestPaperReaderAgent:
    """Test the PaperReaderAgent class."""

    @pytest.fixture(autouse=True)
    def no_backoff(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("scholarcheck.utils.retry.asyncio.sleep", AsyncMock())

    @pytest.fixture
    def agent(self, mock_extractor: Mock) -> PaperReaderAgent:
        return PaperReaderAgent(mock_extractor)

    @pytest.mark.asyncio
    async def test_section_indexes_sorted(self, agent: PaperReaderAgent, mock_extractor: Mock) -> None:
        mock_extractor.extract.return_value = SectionIndexAssignment(items=[
            SectionIndexItem(order_index=3, section_index="3"),
            SectionIndexItem(order_index=0, section_index="1"),
            SectionIndexItem(order_index=2, section_index="2.1"),
            SectionIndexItem(order_index=1, section_index="2"),
        ])

        items = await agent.assign_section_indexes(SECTIONS)

        assert [item.section_index for item in items] == ["1", "2", "2.1", "3"]
        assert '"heading": "A. Background"' in mock_extractor.extract.await_args.args[1]

    @pytest.mark.asyncio
    async def test_section_indexes_retried_when_missing(self, agent: PaperReaderAgent, mock_extractor: Mock) -> None:
        partial = SectionIndexAssignment(items=[SectionIndexItem(order_index=0, section_index="1")])
        complete = SectionIndexAssignment(
            items=[SectionIndexItem(order_index=i, section_index=str(i + 1)) for i in range(4)]
        )
        mock_extractor.extract.side_effect = [partial, complete]

        items = await agent.assign_section_indexes(SECTIONS)

        assert len(items) == 4
        assert mock_extractor.extract.await_count == 2

    @pytest.mark.asyncio
    async def test_section_indexes_give_up(self, agent: PaperReaderAgent, mock_extractor: Mock) -> None:
        mock_extractor.extract.return_value = SectionIndexAssignment(items=[])

        with pytest.raises(ExtractionError):
            await agent.assign_section_indexes(SECTIONS)

        assert mock_extractor.extract.await_count == 3

    @pytest.mark.asyncio
    async def test_no_sections(self, agent: PaperReaderAgent, mock_extractor: Mock) -> None:
        assert await agent.assign_section_indexes([]) == []
        mock_extractor.extract.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_acronyms_deduplicated(self, agent: PaperReaderAgent, mock_extractor: Mock) -> None:
        mock_extractor.extract.return_value = AcronymList(items=[
            AcronymItem(keyword="RCT", value="Randomized controlled trial", explanation="..."),
            AcronymItem(keyword="rct", value="Randomized controlled trial", explanation="..."),
            AcronymItem(keyword="25(OH)D", value="25-hydroxyvitamin D", explanation="..."),
        ])

        items = await agent.extract_acronyms(PdfDocument.from_bytes(b"%PDF"))

        assert [item.keyword for item in items] == ["RCT", "25(OH)D"]

    def test_referenced_figures(self) -> None:
        assert PaperReaderAgent.referenced_figures(FIGURE_SECTIONS) == {"1", "2"}

    @pytest.mark.asyncio
    async def test_figures_normalized(self, agent: PaperReaderAgent, mock_extractor: Mock) -> None:
        mock_extractor.extract.return_value = FigureList(items=[
            FigureItem(figure_number="Figure 1", caption="Study flow.", description="Flow.", page_number=3),
            FigureItem(figure_number="Fig. 2", caption="Effects.", description="Forest plot.", page_number=5),
            FigureItem(figure_number="2b", caption="Effects (b).", description="Subgroup.", page_number=5),
        ])

        figures = await agent.extract_figures(PdfDocument.from_bytes(b"%PDF"), FIGURE_SECTIONS)

        assert [(f.figure_number, f.page_number) for f in figures] == [("1", 3), ("2", 5)]
        assert mock_extractor.extract.await_count == 1
        schema, prompt = mock_extractor.extract.await_args.args
        assert schema is FigureList
        assert "each must have an entry: 1, 2" in prompt

    @pytest.mark.asyncio
    async def test_figures_retried_when_unmatched(self, agent: PaperReaderAgent, mock_extractor: Mock) -> None:
        partial = FigureList(items=[FigureItem(figure_number="1", caption="Study flow.")])
        complete = FigureList(items=[
            FigureItem(figure_number="1", caption="Study flow."),
            FigureItem(figure_number="2", caption="Effects."),
        ])
        mock_extractor.extract.side_effect = [partial, complete]

        figures = await agent.extract_figures(PdfDocument.from_bytes(b"%PDF"), FIGURE_SECTIONS)

        assert [f.figure_number for f in figures] == ["1", "2"]
        assert mock_extractor.extract.await_count == 2

    @pytest.mark.asyncio
    async def test_figures_partial_after_three_attempts(
        self, agent: PaperReaderAgent, mock_extractor: Mock
    ) -> None:
        mock_extractor.extract.return_value = FigureList(items=[FigureItem(figure_number="1", caption="Study flow.")])

        figures = await agent.extract_figures(PdfDocument.from_bytes(b"%PDF"), FIGURE_SECTIONS)

        assert [f.figure_number for f in figures] == ["1"]
        assert mock_extractor.extract.await_count == 3

    @pytest.mark.asyncio
    async def test_figures_error_after_retries(self, agent: PaperReaderAgent, mock_extractor: Mock) -> None:
        mock_extractor.extract.side_effect = ExtractionError("Model call timed out")

        with pytest.raises(ExtractionError):
            await agent.extract_figures(PdfDocument.from_bytes(b"%PDF"), FIGURE_SECTIONS)

        assert mock_extractor.extract.await_count == 3


class TestPaperReaderService:
    """Test the PaperReaderService class."""

    @pytest.fixture
    def reader(self) -> Mock:
        reader = Mock(spec=PaperReaderAgent)
        reader.extract_info = AsyncMock(return_value=PaperInfo(
            title="Vitamin D and depression",
            authors=["A. Author", "B. Author"],
            published_date="2013-01-01",
            abstract="We study...",
        ))
        reader.extract_sections = AsyncMock(return_value=SECTIONS)
        reader.assign_section_indexes = AsyncMock(return_value=[
            SectionIndexItem(order_index=i, section_index=index) for i, index in enumerate(["1", "2", "2.1", "3"])
        ])
        reader.extract_figures = AsyncMock(return_value=[
            FigureItem(figure_number="1", caption="Figure 1. Study flow.", description="Enrollment flow.", page_number=3)
        ])
        reader.extract_acronyms = AsyncMock(return_value=[
            AcronymItem(keyword="RCT", value="Randomized controlled trial", explanation="A study design.")
        ])
        reader.extract_references = AsyncMock(return_value=[
            ReferenceItem(title="Prior work", authors=["C. Author"], year="2010", venue="Lancet", doi=None)
        ])
        return reader

    @pytest.mark.asyncio
    async def test_upload_stores_file(self, test_db: Session, test_settings, sample_pdf_bytes: bytes) -> None:
        service = PaperReaderService(test_db)

        paper = await service.upload_paper(upload(sample_pdf_bytes))

        assert paper.status == "pending"
        assert paper.size_bytes == len(sample_pdf_bytes)
        assert paper.file_path.startswith(test_settings.storage_path)
        assert os.path.exists(paper.file_path)
        assert await service.read_pdf(paper) == sample_pdf_bytes

    @pytest.mark.asyncio
    async def test_duplicate_upload_returns_existing(self, test_db: Session, sample_pdf_bytes: bytes) -> None:
        service = PaperReaderService(test_db)

        first = await service.upload_paper(upload(sample_pdf_bytes))
        second = await service.upload_paper(upload(sample_pdf_bytes, filename="copy.pdf"))

        assert first.id == second.id

    @pytest.mark.asyncio
    async def test_upload_rejects_non_pdf(self, test_db: Session) -> None:
        service = PaperReaderService(test_db)

        with pytest.raises(FileValidationError):
            await service.upload_paper(upload(b"plain text", filename="notes.txt"))
        with pytest.raises(FileValidationError):
            await service.upload_paper(upload(b"plain text", filename="fake.pdf"))

    @pytest.mark.asyncio
    async def test_extract_persists_structure(
        self, test_db: Session, reader: Mock, sample_pdf_bytes: bytes
    ) -> None:
        service = PaperReaderService(test_db, reader)
        uploaded = await service.upload_paper(upload(sample_pdf_bytes))

        paper = await service.extract_paper(uploaded.id)

        assert paper.status == "completed"
        assert paper.title == "Vitamin D and depression"
        assert paper.extracted_at is not None
        document = reader.extract_info.await_args.args[0]
        assert document.data == sample_pdf_bytes

        sections, total = service.list_sections(paper.id, skip=1, limit=2)
        assert total == 4
        assert [s.section_index for s in sections] == ["2", "2.1"]
        assert [a.keyword for a in service.list_acronyms(paper.id)] == ["RCT"]
        figures = service.list_figures(paper.id)
        assert [(f.figure_number, f.page_number) for f in figures] == [("1", 3)]
        assert reader.extract_figures.await_args.args[1] == SECTIONS
        assert service.list_references(paper.id)[0].venue == "Lancet"

    @pytest.mark.asyncio
    async def test_reextract_replaces_structure(
        self, test_db: Session, reader: Mock, sample_pdf_bytes: bytes
    ) -> None:
        service = PaperReaderService(test_db, reader)
        uploaded = await service.upload_paper(upload(sample_pdf_bytes))

        await service.extract_paper(uploaded.id)
        await service.extract_paper(uploaded.id)

        assert service.list_sections(uploaded.id)[1] == 4
        assert len(service.list_acronyms(uploaded.id)) == 1
        assert len(service.list_figures(uploaded.id)) == 1

    @pytest.mark.asyncio
    async def test_extract_failure_marks_paper(
        self, test_db: Session, reader: Mock, sample_pdf_bytes: bytes
    ) -> None:
        reader.extract_sections.side_effect = ExtractionError("Model call timed out")
        service = PaperReaderService(test_db, reader)
        uploaded = await service.upload_paper(upload(sample_pdf_bytes))

        with pytest.raises(ExtractionError):
            await service.extract_paper(uploaded.id)

        paper = service.get_paper(uploaded.id)
        assert paper.status == "failed"
        assert paper.error_message == "Model call timed out"

    def test_unknown_paper(self, test_db: Session) -> None:
        service = PaperReaderService(test_db)

        with pytest.raises(PaperNotFoundError):
            service.get_paper(uuid.uuid4())
        with pytest.raises(PaperNotFoundError):
            service.list_sections(uuid.uuid4())
