"""
FastAPI dependency providers for agents and services.
"""

from functools import lru_cache
from typing import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from scholarcheck.agents.base_agent import StructuredExtractor
from scholarcheck.agents.chat_agent import ChatAgent
from scholarcheck.agents.paper_analyzer import DeepPaperAnalyzerAgent
from scholarcheck.agents.paper_reader import PaperReaderAgent
from scholarcheck.agents.pre_evaluator import AbstractPreEvaluatorAgent
from scholarcheck.agents.query_builder import QueryBuilderAgent
from scholarcheck.agents.verdict_aggregator import VerdictAggregatorAgent
from scholarcheck.db.database import get_db
from scholarcheck.services.arxiv_service import ArxivService
from scholarcheck.services.fact_check_service import FactCheckService
from scholarcheck.services.kafka_service import KafkaService
from scholarcheck.services.paper_reader_service import PaperReaderService
from scholarcheck.services.paper_search_service import PaperSearchService
from scholarcheck.services.pdf_fetcher import PdfFetcher
from scholarcheck.services.session_service import SessionStore


@lru_cache()
def get_extractor() -> StructuredExtractor:
    """Process-wide extractor sharing one Anthropic client."""
    return StructuredExtractor()


def get_query_builder(extractor: StructuredExtractor = Depends(get_extractor)) -> QueryBuilderAgent:
    return QueryBuilderAgent(extractor)


def get_pre_evaluator(extractor: StructuredExtractor = Depends(get_extractor)) -> AbstractPreEvaluatorAgent:
    return AbstractPreEvaluatorAgent(extractor)


def get_verdict_aggregator(extractor: StructuredExtractor = Depends(get_extractor)) -> VerdictAggregatorAgent:
    return VerdictAggregatorAgent(extractor)


def get_pdf_fetcher() -> PdfFetcher:
    return PdfFetcher()


def get_paper_analyzer(
    extractor: StructuredExtractor = Depends(get_extractor),
    fetcher: PdfFetcher = Depends(get_pdf_fetcher),
) -> DeepPaperAnalyzerAgent:
    return DeepPaperAnalyzerAgent(extractor, fetcher)


def get_chat_agent(extractor: StructuredExtractor = Depends(get_extractor)) -> ChatAgent:
    return ChatAgent(extractor)


def get_paper_reader(extractor: StructuredExtractor = Depends(get_extractor)) -> PaperReaderAgent:
    return PaperReaderAgent(extractor)


def get_paper_search_service() -> PaperSearchService:
    return PaperSearchService()


def get_arxiv_service() -> ArxivService:
    return ArxivService()


def get_session_store(db: Session = Depends(get_db)) -> SessionStore:
    return SessionStore(db)


def get_fact_check_service(
    store: SessionStore = Depends(get_session_store),
    query_builder: QueryBuilderAgent = Depends(get_query_builder),
    search_service: PaperSearchService = Depends(get_paper_search_service),
    pre_evaluator: AbstractPreEvaluatorAgent = Depends(get_pre_evaluator),
    aggregator: VerdictAggregatorAgent = Depends(get_verdict_aggregator),
) -> FactCheckService:
    return FactCheckService(store, query_builder, search_service, pre_evaluator, aggregator)


def get_paper_reader_service(db: Session = Depends(get_db)) -> PaperReaderService:
    return PaperReaderService(db)


def get_extracting_reader_service(
    db: Session = Depends(get_db),
    reader: PaperReaderAgent = Depends(get_paper_reader),
) -> PaperReaderService:
    return PaperReaderService(db, reader)


def get_kafka_service() -> Generator[KafkaService, None, None]:
    """Kafka producer for the duration of one request."""
    with KafkaService() as kafka:
        yield kafka
