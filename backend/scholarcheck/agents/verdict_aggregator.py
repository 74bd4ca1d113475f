"""
AI agent that combines pre-evaluated papers into one final verdict.
"""

from typing import Dict, List, Sequence

from scholarcheck.agents.base_agent import BaseAgent
from scholarcheck.schemas.extraction import FinalVerdict
from scholarcheck.schemas.paper import CandidatePaperData
from scholarcheck.utils.logger import get_logger

logger = get_logger(__name__)


class NoUsableEvidenceError(Exception):
    """Raised when no paper carries a pre-evaluation verdict and summary."""
    pass


class VerdictAggregatorAgent(BaseAgent):
    """
    Produces a FinalVerdict from abstract pre-evaluations.

    The evidence counts in the returned verdict always come from the
    filtered paper set, not from the model.
    """

    @staticmethod
    def usable_papers(papers: Sequence[CandidatePaperData]) -> List[CandidatePaperData]:
        return [
            p for p in papers
            if p.pre_evaluation is not None and p.pre_evaluation.verdict and p.pre_evaluation.summary
        ]

    @staticmethod
    def count_evidence(papers: Sequence[CandidatePaperData]) -> Dict[str, int]:
        counts = {"supports": 0, "contradicts": 0, "neutral": 0}
        for paper in papers:
            verdict = paper.pre_evaluation.verdict
            if verdict in counts:
                counts[verdict] += 1
        return counts

    async def aggregate(self, statement: str, papers: Sequence[CandidatePaperData]) -> FinalVerdict:
        """
        Generate the final verdict for a statement.

        Args:
            statement: The claim being checked
            papers: Candidate papers, each ideally carrying ``pre_evaluation``

        Returns:
            FinalVerdict with counts recomputed from the usable papers

        Raises:
            NoUsableEvidenceError: If no paper has a pre-evaluation
            ExtractionError: If the model call fails
        """
        usable = self.usable_papers(papers)
        if not usable:
            raise NoUsableEvidenceError("No papers with pre-evaluation results found")

        counts = self.count_evidence(usable)
        logger.info(f"[{self.agent_name}] Aggregating verdict",
                    paper_count=len(usable),
                    **counts)

        verdict = await self.extractor.extract(FinalVerdict, self._prompt(statement, usable, counts))

        verdict = verdict.model_copy(update={
            "supporting_evidence_count": counts["supports"],
            "contradicting_evidence_count": counts["contradicts"],
            "neutral_evidence_count": counts["neutral"],
        })

        logger.info(f"[{self.agent_name}] Verdict produced",
                    final_verdict=verdict.final_verdict,
                    confidence_score=verdict.confidence_score)
        return verdict

    def _paper_details(self, papers: Sequence[CandidatePaperData]) -> str:
        blocks = []
        for index, paper in enumerate(papers, start=1):
            authors = ", ".join(paper.authors) if paper.authors else "Unknown authors"
            year = paper.publication_year or (paper.published[:4] if paper.published else "Unknown year")
            evaluation = paper.pre_evaluation
            lines = [
                f"Paper {index}: {paper.title or 'Untitled'}",
                f"Authors: {authors}",
                f"Year: {year}",
                f"Citations: {paper.cited_by_count if paper.cited_by_count is not None else 'Unknown'}",
                f"Journal: {paper.journal_name or 'Unknown'}",
                f"Verdict: {evaluation.verdict}",
                f"Summary: {evaluation.summary}",
            ]
            if evaluation.snippet:
                lines.append(f'Key Evidence: "{evaluation.snippet}"')
            blocks.append("\n".join(lines))
        return "\n\n".join(blocks)

    def _prompt(self, statement: str, papers: Sequence[CandidatePaperData], counts: Dict[str, int]) -> str:
        return f"""You are an expert fact-checker. Analyze the following research evidence to determine the validity of the statement.

Statement: "{statement}"

Evidence Summary:
- Total papers analyzed: {len(papers)}
- Supporting papers: {counts["supports"]}
- Contradicting papers: {counts["contradicts"]}
- Neutral papers: {counts["neutral"]}

Detailed Evidence:
{self._paper_details(papers)}

Weigh the balance of evidence together with source quality: citation counts, journal reputation and recency.

Final verdict categories:
- "true": strong, consistent supporting evidence and little or no contradiction
- "mostly_true": supporting evidence dominates, with minor caveats or contradictions
- "mixed_evidence": substantial evidence on both sides
- "mostly_false": contradicting evidence dominates, with minor support
- "false": strong, consistent contradicting evidence
- "insufficient_evidence": too little relevant evidence to decide

Confidence score (integer from 0 to 100):
- 90-100: very high confidence, many high-quality consistent studies
- 70-89: high confidence, good evidence with minor gaps
- 50-69: moderate confidence, some evidence but notable limitations
- 30-49: low confidence, limited or conflicting evidence
- 0-29: very low confidence, very little relevant evidence

Fields:
- final_verdict: one of the six categories above
- confidence_score: integer 0-100 following the bands above
- summary: the bottom-line verdict in 1-2 sentences
- reasoning: 3-4 sentences explaining why the evidence leads to this verdict
- supporting_evidence_count, contradicting_evidence_count, neutral_evidence_count: the counts above
- key_findings: the most important findings across the papers
- limitations: limitations of the evidence base"""
