"""
Structured model access shared by every AI agent.

StructuredExtractor turns a prompt (and optionally a PDF) into a validated
pydantic object by forcing Claude to answer through a single tool whose input
schema is the target model's JSON schema. BaseAgent gives the specialized
agents a common extractor, name and logging helpers.
"""

import base64
import json
import time
from typing import Any, AsyncIterator, Dict, List, Optional, Type, TypeVar

import anthropic
from anthropic import AsyncAnthropic
from pydantic import BaseModel, ValidationError

from scholarcheck.config import get_settings
from scholarcheck.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

T = TypeVar("T", bound=BaseModel)

STRUCTURED_TOOL_NAME = "record_result"


class ExtractionError(Exception):
    """Raised when a model call fails, times out or returns non-conforming output."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DocumentAccessDeniedError(ExtractionError):
    """Raised when the provider could not retrieve a document URL because access was denied."""
    pass


class PdfDocument:
    """A PDF attached to a prompt, either by URL or as raw bytes."""

    def __init__(self, url: Optional[str] = None, data: Optional[bytes] = None) -> None:
        if (url is None) == (data is None):
            raise ValueError("PdfDocument needs exactly one of url or data")
        self.url = url
        self.data = data

    @classmethod
    def from_url(cls, url: str) -> "PdfDocument":
        return cls(url=url)

    @classmethod
    def from_bytes(cls, data: bytes) -> "PdfDocument":
        return cls(data=data)

    def to_content_block(self) -> Dict[str, Any]:
        if self.url is not None:
            source = {"type": "url", "url": self.url}
        else:
            source = {
                "type": "base64",
                "media_type": "application/pdf",
                "data": base64.standard_b64encode(self.data).decode("ascii"),
            }
        return {"type": "document", "source": source}

    def describe(self) -> str:
        return self.url if self.url is not None else f"<{len(self.data)} bytes>"


def _is_access_denied(error: anthropic.APIStatusError) -> bool:
    """Provider errors for unreachable document URLs only carry the upstream status in the message."""
    if error.status_code == 403:
        return True
    message = str(error.message).lower()
    return "403" in message or "forbidden" in message


class StructuredExtractor:
    """
    Produces schema-conforming objects from Claude.

    Never retries: SDK retries are disabled and callers own any retry policy.
    """

    def __init__(
        self,
        client: Optional[AsyncAnthropic] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> None:
        if client is None:
            if not settings.anthropic_api_key:
                raise ValueError("ANTHROPIC_API_KEY environment variable is required")
            client = AsyncAnthropic(
                api_key=settings.anthropic_api_key,
                timeout=settings.llm_timeout_seconds,
                max_retries=0,
            )

        self.client: AsyncAnthropic = client
        self.model: str = model or settings.claude_model
        self.max_tokens: int = max_tokens or settings.llm_max_tokens

    async def extract(
        self,
        schema: Type[T],
        prompt: str,
        document: Optional[PdfDocument] = None,
        system_prompt: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> T:
        """
        Ask the model for an instance of ``schema``.

        Args:
            schema: Pydantic model describing the expected result
            prompt: The user prompt
            document: Optional PDF attached before the prompt
            system_prompt: Optional system prompt
            max_tokens: Override for the response token budget

        Returns:
            A validated instance of ``schema``

        Raises:
            DocumentAccessDeniedError: If the attached document URL was refused
            ExtractionError: On API errors, timeouts or invalid output
        """
        start_time = time.monotonic()

        if document is not None:
            content: Any = [document.to_content_block(), {"type": "text", "text": prompt}]
        else:
            content = prompt

        message_params: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "temperature": 0.1,
            "messages": [{"role": "user", "content": content}],
            "tools": [{
                "name": STRUCTURED_TOOL_NAME,
                "description": f"Record the {schema.__name__} result.",
                "input_schema": schema.model_json_schema(),
            }],
            "tool_choice": {"type": "tool", "name": STRUCTURED_TOOL_NAME},
        }
        if system_prompt:
            message_params["system"] = system_prompt

        logger.info("Requesting structured output",
                    schema=schema.__name__,
                    prompt_length=len(prompt),
                    document=document.describe() if document is not None else None)

        try:
            response = await self.client.messages.create(**message_params)

        except anthropic.APITimeoutError as e:
            logger.error("Model call timed out", schema=schema.__name__, error=str(e))
            raise ExtractionError(f"Model call timed out: {str(e)}")

        except anthropic.APIStatusError as e:
            if document is not None and document.url is not None and _is_access_denied(e):
                logger.warning("Document URL access denied", schema=schema.__name__, url=document.url, status_code=e.status_code)
                raise DocumentAccessDeniedError(f"Document access denied: {str(e)}", status_code=403)
            logger.error("Claude API error", schema=schema.__name__, status_code=e.status_code, error=str(e))
            raise ExtractionError(f"Claude API error: {str(e)}", status_code=e.status_code)

        except anthropic.APIError as e:
            logger.error("Claude API error", schema=schema.__name__, error=str(e))
            raise ExtractionError(f"Claude API error: {str(e)}")

        tool_input = None
        for block in response.content or []:
            if getattr(block, "type", None) == "tool_use":
                tool_input = block.input
                break

        if tool_input is None:
            raise ExtractionError("Model response did not contain structured output")

        try:
            result = schema.model_validate_json(json.dumps(tool_input), strict=True)
        except ValidationError as e:
            logger.error("Structured output failed validation",
                         schema=schema.__name__,
                         error_count=e.error_count(),
                         error=str(e))
            raise ExtractionError(f"Model output does not match {schema.__name__}: {str(e)}")

        usage = getattr(response, "usage", None)
        logger.info("Structured output received",
                    schema=schema.__name__,
                    duration_seconds=round(time.monotonic() - start_time, 2),
                    input_tokens=getattr(usage, "input_tokens", 0),
                    output_tokens=getattr(usage, "output_tokens", 0))

        return result

    async def stream_text(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        max_tokens: int = 1000,
        temperature: float = 0.7,
    ) -> AsyncIterator[str]:
        """
        Stream a free-text reply.

        Raises:
            ExtractionError: If the stream cannot be opened or breaks
        """
        try:
            async with self.client.messages.stream(
                model=self.model,
                system=system_prompt,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            ) as stream:
                async for text in stream.text_stream:
                    yield text
        except anthropic.APIError as e:
            logger.error("Claude streaming error", error=str(e))
            raise ExtractionError(f"Claude streaming error: {str(e)}")


class BaseAgent:
    """
    Base class for AI agents in the fact-check and read pipelines.

    Provides a shared StructuredExtractor plus naming and logging helpers.
    """

    def __init__(self, extractor: Optional[StructuredExtractor] = None) -> None:
        self.extractor: StructuredExtractor = extractor or StructuredExtractor()
        self.agent_name: str = self.__class__.__name__

    def _truncate_for_log(self, text: Optional[str], max_length: int = 200) -> str:
        """
        Truncate text for logging to avoid overly long log messages.

        Args:
            text: Text to truncate
            max_length: Maximum length to keep

        Returns:
            Truncated text with ellipsis if needed
        """
        if not text:
            return ""
        if len(text) <= max_length:
            return text
        return text[:max_length] + "..."
