"""
AI agent answering follow-up questions about a fact-check.
"""

from typing import Any, AsyncIterator, Dict, List, Sequence

from scholarcheck.agents.base_agent import BaseAgent
from scholarcheck.schemas.fact_check import ChatMessage
from scholarcheck.utils.logger import get_logger

logger = get_logger(__name__)


class ChatAgent(BaseAgent):
    """Streams answers grounded in a fact-check session's statement, verdict and papers."""

    def build_system_prompt(self, context: Dict[str, Any]) -> str:
        """
        Describe the fact-check to the model.

        ``context`` uses the session response shape: statement, keywords,
        finalVerdict and papers (with pre_evaluation and analysis).
        """
        keywords = context.get("keywords") or []
        verdict = context.get("finalVerdict") or context.get("final_verdict") or {}
        papers = context.get("papers") or []

        lines = [
            "You are a research assistant helping a user understand the results of an academic fact-check.",
            "Answer questions using only the information below. If the answer is not supported by these papers, say so.",
            "",
            f'Statement: "{context.get("statement", "")}"',
            f"Keywords: {', '.join(str(k) for k in keywords) or 'None'}",
        ]

        if verdict:
            lines.extend([
                f"Final verdict: {verdict.get('final_verdict', 'unknown')}"
                f" (confidence {verdict.get('confidence_score', 'unknown')}/100)",
                f"Verdict summary: {verdict.get('summary', '')}",
                f"Reasoning: {verdict.get('reasoning', '')}",
            ])
        else:
            lines.append("Final verdict: not available")

        lines.append("")
        lines.append(f"Papers ({len(papers)}):")
        for index, paper in enumerate(papers, start=1):
            lines.extend(self._paper_lines(index, paper))

        return "\n".join(lines)

    def _paper_lines(self, index: int, paper: Dict[str, Any]) -> List[str]:
        authors = paper.get("authors") or []
        if isinstance(authors, list):
            authors = ", ".join(str(a) for a in authors)
        lines = [
            "",
            f"{index}. {paper.get('title') or 'Untitled'}",
            f"   Authors: {authors or 'Unknown'}",
            f"   Published: {paper.get('published') or 'Unknown'}",
            f"   Journal: {paper.get('journal_name') or 'Unknown'}",
        ]

        pre_evaluation = paper.get("pre_evaluation") or {}
        if pre_evaluation.get("verdict"):
            lines.append(f"   Abstract verdict: {pre_evaluation['verdict']}: {pre_evaluation.get('summary', '')}")

        analysis = (paper.get("analysis") or {}).get("analysis") or {}
        if analysis.get("support_level"):
            lines.append(f"   Deep analysis: {analysis['support_level']}: {analysis.get('summary', '')}")
            for finding in analysis.get("key_findings") or []:
                lines.append(f"   - {finding}")

        return lines

    async def stream_answer(self, messages: Sequence[ChatMessage], context: Dict[str, Any]) -> AsyncIterator[str]:
        """
        Stream the assistant's reply to the conversation.

        System messages from the client are ignored; the system prompt is
        always built from ``context``.

        Raises:
            ExtractionError: If the model stream fails
        """
        conversation = [
            {"role": m.role, "content": m.content}
            for m in messages
            if m.role in ("user", "assistant")
        ]

        logger.info(f"[{self.agent_name}] Streaming chat answer",
                    message_count=len(conversation),
                    paper_count=len(context.get("papers") or []))

        async for chunk in self.extractor.stream_text(self.build_system_prompt(context), conversation):
            yield chunk
