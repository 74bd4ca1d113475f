"""
Kafka consumer worker for deep-analysis jobs.
Runs batched, PDF-grounded analysis of a saved session's papers.
"""

import asyncio
import json
import signal
import sys
import uuid
from typing import Any, Dict, Optional

from kafka import KafkaConsumer
from kafka.errors import KafkaError
from sqlalchemy.exc import SQLAlchemyError

from scholarcheck.agents.base_agent import StructuredExtractor
from scholarcheck.agents.paper_analyzer import DeepPaperAnalyzerAgent
from scholarcheck.agents.pre_evaluator import AbstractPreEvaluatorAgent
from scholarcheck.agents.query_builder import QueryBuilderAgent
from scholarcheck.agents.verdict_aggregator import VerdictAggregatorAgent
from scholarcheck.config import get_settings
from scholarcheck.db.database import SessionLocal, dispose_engine, init_engine
from scholarcheck.services.fact_check_service import DeepAnalysisSummary, FactCheckService
from scholarcheck.services.paper_search_service import PaperSearchService
from scholarcheck.services.session_service import PersistenceError, SessionNotFoundError, SessionStore
from scholarcheck.utils.logger import get_logger, set_correlation_id, setup_logging

settings = get_settings()
setup_logging(settings.log_level, service_name="deep-analysis-worker", environment=settings.environment)
logger = get_logger(__name__)


class DeepAnalysisWorker:
    """
    Kafka consumer worker that processes deep-analysis jobs.

    A shutdown signal sets ``stop_event``; the running job stops before its
    next paper and keeps what it already saved.
    """

    def __init__(self, extractor: Optional[StructuredExtractor] = None) -> None:
        self.running = False
        self.consumer: Optional[KafkaConsumer] = None
        self.stop_event = asyncio.Event()
        self.extractor = extractor or StructuredExtractor()

        logger.info("Deep-analysis worker initialized")

    def _setup_consumer(self) -> None:
        try:
            self.consumer = KafkaConsumer(
                settings.kafka_topic_deep_analysis,
                bootstrap_servers=settings.kafka_bootstrap_servers.split(','),
                value_deserializer=lambda m: json.loads(m.decode('utf-8')),
                key_deserializer=lambda m: m.decode('utf-8') if m else None,
                group_id='deep-analysis-workers',
                auto_offset_reset='latest',
                enable_auto_commit=True,
                consumer_timeout_ms=1000  # Wake up regularly to check for shutdown
            )

            logger.info("Kafka consumer setup complete",
                        topic=settings.kafka_topic_deep_analysis,
                        bootstrap_servers=settings.kafka_bootstrap_servers)

        except KafkaError as e:
            logger.error("Failed to setup Kafka consumer", error=str(e))
            raise

    def _setup_signal_handlers(self) -> None:
        def signal_handler(signum, frame):
            logger.info("Received shutdown signal", signal=signum)
            self.stop()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def _build_service(self, store: SessionStore) -> FactCheckService:
        return FactCheckService(
            store,
            QueryBuilderAgent(self.extractor),
            PaperSearchService(),
            AbstractPreEvaluatorAgent(self.extractor),
            VerdictAggregatorAgent(self.extractor),
            analyzer=DeepPaperAnalyzerAgent(self.extractor),
        )

    async def process_job(self, message: Dict[str, Any]) -> Optional[DeepAnalysisSummary]:
        """
        Process a single deep-analysis job message.

        Returns:
            The run summary, or None if the job could not run
        """
        job_id = uuid.UUID(message["job_id"])
        shareable_id = message["shareable_id"]

        set_correlation_id(str(job_id))
        logger.info("Worker picked up job", job_id=str(job_id), shareable_id=shareable_id)

        db = SessionLocal()
        try:
            service = self._build_service(SessionStore(db))
            summary = await service.run_deep_analysis(
                shareable_id,
                batch_size=message.get("batch_size"),
                refresh=bool(message.get("refresh", False)),
                cancel_event=self.stop_event,
            )
            logger.info("Deep-analysis job complete", job_id=str(job_id), **summary.model_dump())
            return summary

        except SessionNotFoundError as e:
            logger.error("Session not found for job", job_id=str(job_id), error=str(e))
            return None
        except PersistenceError as e:
            logger.error("Deep-analysis job failed to save", job_id=str(job_id), error=str(e))
            return None
        except SQLAlchemyError as e:
            logger.error("Database error during deep-analysis job", job_id=str(job_id), error=str(e))
            return None
        finally:
            db.close()

    def run(self) -> None:
        """Main worker loop."""
        logger.info("Starting deep-analysis worker")

        try:
            init_engine(settings.database_url)
            self._setup_signal_handlers()
            self._setup_consumer()

            self.running = True
            logger.info("Worker ready to process deep-analysis jobs")

            while self.running:
                for message in self.consumer:
                    if not self.running:
                        break
                    try:
                        asyncio.run(self.process_job(message.value))
                    except Exception as e:
                        logger.error("Error processing job message",
                                     error=str(e),
                                     message_key=message.key,
                                     message_value=message.value)

        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self.stop()
            dispose_engine()

    def stop(self) -> None:
        """Stop the worker gracefully."""
        if not self.running and self.consumer is None:
            return
        logger.info("Stopping deep-analysis worker")

        self.running = False
        self.stop_event.set()

        if self.consumer:
            try:
                self.consumer.close()
                logger.info("Kafka consumer closed")
            except KafkaError as e:
                logger.error("Error closing Kafka consumer", error=str(e))
            self.consumer = None

        logger.info("Deep-analysis worker stopped")


def main() -> None:
    """Main entry point for the deep-analysis worker."""
    logger.info("ScholarCheck deep-analysis worker starting")

    try:
        worker = DeepAnalysisWorker()
        worker.run()
    except (KafkaError, ValueError) as e:
        logger.error("Failed to start deep-analysis worker", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
