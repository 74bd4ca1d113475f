"""
AI agent that classifies a paper abstract's stance toward a statement.
"""

from typing import List, Optional, Sequence

from scholarcheck.agents.base_agent import BaseAgent
from scholarcheck.config import get_settings
from scholarcheck.schemas.paper import NO_ABSTRACT, CandidatePaperData, PreEvaluation
from scholarcheck.utils.concurrency import map_with_concurrency_limit
from scholarcheck.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

NO_ABSTRACT_RESULT = PreEvaluation(verdict="neutral", summary="No abstract available.", snippet="")
ERROR_RESULT = PreEvaluation(verdict="neutral", summary="Pre-evaluation error.", snippet="")


class AbstractPreEvaluatorAgent(BaseAgent):
    """
    Cheap abstract-only stance classification.

    Papers without an abstract are never sent to the model. Batches run with
    a fixed concurrency ceiling and never fail as a whole.
    """

    async def pre_evaluate(self, statement: str, abstract: Optional[str], title: Optional[str] = None) -> PreEvaluation:
        """
        Classify one abstract as supports, contradicts, neutral or not_relevant.

        A snippet that is not a verbatim substring of the abstract is cleared.

        Raises:
            ExtractionError: If the model call fails
        """
        if not abstract or abstract == NO_ABSTRACT:
            return NO_ABSTRACT_RESULT.model_copy()

        result = await self.extractor.extract(PreEvaluation, self._prompt(statement, abstract, title))
        if result.snippet and result.snippet not in abstract:
            logger.warning(f"[{self.agent_name}] Discarding snippet not quoted from the abstract",
                           snippet_length=len(result.snippet))
            result = result.model_copy(update={"snippet": ""})
        return result

    async def pre_evaluate_all(
        self,
        statement: str,
        papers: Sequence[CandidatePaperData],
        limit: Optional[int] = None,
    ) -> List[PreEvaluation]:
        """
        Pre-evaluate every paper with bounded concurrency.

        Returns:
            One result per paper, in input order. A paper whose evaluation
            raises gets the neutral "Pre-evaluation error." result.
        """
        limit = limit or settings.pre_eval_concurrency

        async def evaluate(paper: CandidatePaperData, index: int) -> PreEvaluation:
            try:
                return await self.pre_evaluate(statement, paper.summary, paper.title)
            except Exception as e:
                logger.error(f"[{self.agent_name}] Pre-evaluation failed",
                             paper_index=index,
                             paper_id=paper.id,
                             error=str(e))
                return ERROR_RESULT.model_copy()

        logger.info(f"[{self.agent_name}] Pre-evaluating papers", paper_count=len(papers), concurrency=limit)
        results = await map_with_concurrency_limit(papers, evaluate, limit=limit)

        counts = {}
        for result in results:
            counts[result.verdict] = counts.get(result.verdict, 0) + 1
        logger.info(f"[{self.agent_name}] Pre-evaluation complete", **counts)

        return results

    def _prompt(self, statement: str, abstract: str, title: Optional[str]) -> str:
        title_line = f'Paper title: "{title}"\n' if title else ""
        return f"""You are an expert scientific fact-checker. Given a user statement and a paper abstract, classify whether the abstract SUPPORTS, CONTRADICTS, is NEUTRAL, or is NOT RELEVANT regarding the statement.

Be strict:
- Mark "supports" or "contradicts" ONLY if the abstract clearly and explicitly takes a position on the statement.
- Mark "neutral" if the abstract discusses the same topic but does not support or contradict the statement.
- Mark "not_relevant" if the abstract does not discuss the statement or its topic at all.

Statement: "{statement}"
{title_line}Abstract: "{abstract}"

Fields:
- verdict: "supports" | "contradicts" | "neutral" | "not_relevant"
- summary: A 1-2 sentence explanation of the verdict. Do NOT start with phrases like "The abstract" or "This paper"; state the key finding or reasoning directly.
- snippet: The single most relevant sentence or phrase from the abstract that best supports your verdict. It must be copied verbatim from the abstract, not paraphrased. If no clear snippet exists, return an empty string."""
