"""
Service for Kafka message publishing.
Queues deep-analysis batch jobs for the deep-analysis worker.
"""

import json
import uuid
from typing import Optional

from kafka import KafkaProducer
from kafka.errors import KafkaError

from scholarcheck.config import get_settings
from scholarcheck.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


class KafkaConnectionError(Exception):
    """Raised when Kafka connection fails."""
    pass


class KafkaService:
    """
    Service class for Kafka message publishing.

    Publishes deep-analysis job messages keyed by job id.
    """

    def __init__(self, producer: Optional[KafkaProducer] = None) -> None:
        self.producer: Optional[KafkaProducer] = producer
        if self.producer is None:
            self._initialize_producer()

    def _initialize_producer(self) -> None:
        """
        Initialize Kafka producer with error handling.

        Raises:
            KafkaConnectionError: If unable to connect to Kafka
        """
        try:
            self.producer = KafkaProducer(
                bootstrap_servers=settings.kafka_bootstrap_servers.split(','),
                value_serializer=lambda v: json.dumps(v).encode('utf-8'),
                key_serializer=lambda k: str(k).encode('utf-8') if k else None,
                acks='all',  # Wait for all replicas to acknowledge
                retries=3,
                retry_backoff_ms=100
            )

            logger.info("Kafka producer initialized",
                        bootstrap_servers=settings.kafka_bootstrap_servers)

        except KafkaError as e:
            logger.error("Failed to initialize Kafka producer", error=str(e))
            raise KafkaConnectionError(f"Cannot connect to Kafka: {str(e)}")

    def publish_deep_analysis_job(
        self,
        job_id: uuid.UUID,
        shareable_id: str,
        batch_size: Optional[int] = None,
        refresh: bool = False,
    ) -> bool:
        """
        Publish a deep-analysis job for a saved session.

        Args:
            job_id: UUID identifying the job in logs
            shareable_id: Shareable id of the session to analyze
            batch_size: Optional override of the configured batch size
            refresh: Re-analyze papers that already have a stored analysis

        Returns:
            True if message was published successfully

        Raises:
            KafkaConnectionError: If publishing fails
        """
        if not self.producer:
            raise KafkaConnectionError("Kafka producer not initialized")

        message = {
            "job_id": str(job_id),
            "shareable_id": shareable_id,
            "batch_size": batch_size,
            "refresh": refresh,
        }

        try:
            future = self.producer.send(
                topic=settings.kafka_topic_deep_analysis,
                key=str(job_id),
                value=message
            )

            record_metadata = future.get(timeout=10)

            logger.info("Deep-analysis job published to Kafka",
                        job_id=str(job_id),
                        shareable_id=shareable_id,
                        topic=record_metadata.topic,
                        partition=record_metadata.partition,
                        offset=record_metadata.offset)

            return True

        except KafkaError as e:
            logger.error("Kafka publish error",
                         job_id=str(job_id),
                         shareable_id=shareable_id,
                         error=str(e))
            raise KafkaConnectionError(f"Failed to publish message: {str(e)}")

    def close(self) -> None:
        """Close the Kafka producer connection."""
        if self.producer:
            try:
                self.producer.close(timeout=5)
                logger.info("Kafka producer closed")
            except KafkaError as e:
                logger.error("Error closing Kafka producer", error=str(e))

    def __enter__(self) -> "KafkaService":
        return self

    def __exit__(self, exc_type: Optional[type], exc_val: Optional[BaseException], exc_tb: Optional[object]) -> None:
        self.close()
