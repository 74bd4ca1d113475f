"""
AI agent that turns a free-text statement into an academic search strategy.
"""

import json
from typing import List

from pydantic import BaseModel

from scholarcheck.agents.base_agent import BaseAgent, ExtractionError
from scholarcheck.schemas.extraction import OptimizedQuery, SearchTermsExtraction
from scholarcheck.utils.logger import get_logger
from scholarcheck.utils.retry import RetryExhaustedError, retry_with_backoff

logger = get_logger(__name__)

MAX_QUERY_ATTEMPTS = 3


class SearchQueryPlan(BaseModel):
    """Search strategy for one statement."""
    statement: str
    query: str
    optimized_query: str
    keywords: List[str]
    research_areas: List[str]
    search_terms: List[str]


class QueryBuilderAgent(BaseAgent):
    """
    Builds search queries in two model calls.

    The first call extracts concepts (keywords, research areas, search terms);
    the second turns them into a boolean OpenAlex query. Each call is retried
    while it returns an empty query or keyword list.
    """

    async def build_query(self, statement: str) -> SearchQueryPlan:
        """
        Derive keywords and an optimized boolean query for a statement.

        Args:
            statement: The claim to fact-check

        Returns:
            SearchQueryPlan with the original and optimized queries

        Raises:
            ExtractionError: If either step fails after its retries
        """
        if not statement.strip():
            raise ExtractionError("Cannot build a query for an empty statement")

        logger.info(f"[{self.agent_name}] Building search query",
                    statement=self._truncate_for_log(statement, 100))

        terms = await self._run_step(
            lambda: self.extractor.extract(SearchTermsExtraction, self._concepts_prompt(statement)),
            lambda result: not result.query.strip() or not result.keywords,
            "extract_search_terms",
        )

        optimized = await self._run_step(
            lambda: self.extractor.extract(OptimizedQuery, self._optimization_prompt(statement, terms)),
            lambda result: not result.optimized_query.strip(),
            "optimize_query",
        )

        plan = SearchQueryPlan(
            statement=statement,
            query=terms.query.strip(),
            optimized_query=optimized.optimized_query.strip(),
            keywords=[k.strip() for k in terms.keywords if k.strip()],
            research_areas=terms.research_areas,
            search_terms=terms.search_terms,
        )

        logger.info(f"[{self.agent_name}] Query built",
                    keywords_count=len(plan.keywords),
                    optimized_query=plan.optimized_query)
        return plan

    async def _run_step(self, operation, is_incomplete, name: str):
        try:
            return await retry_with_backoff(
                operation,
                max_attempts=MAX_QUERY_ATTEMPTS,
                should_retry=is_incomplete,
                retry_on=(ExtractionError,),
                operation_name=f"{self.agent_name}.{name}",
            )
        except RetryExhaustedError as e:
            raise ExtractionError(str(e))

    @staticmethod
    def fallback_queries(plan: SearchQueryPlan) -> List[str]:
        """
        Simpler queries to try, in order, when the optimized query finds nothing.

        Returns:
            Top-5 keywords joined with OR, top-3 keywords joined with AND,
            then the original unoptimized query. Empty candidates are skipped.
        """
        candidates = [
            " OR ".join(plan.keywords[:5]),
            " AND ".join(plan.keywords[:3]),
            plan.query,
        ]
        return [c for c in candidates if c.strip()]

    def _concepts_prompt(self, statement: str) -> str:
        return f"""You are an expert in academic research and fact-checking. Given a statement that needs to be fact-checked, generate appropriate search terms and keywords to find relevant academic papers.

Your task is to:

1. **Extract Core Concepts**: Identify the main claims, topics, and concepts in the statement
2. **Generate Keywords**: Create 5-8 specific keywords that would help find academic papers related to this statement
3. **Identify Research Areas**: Determine which academic fields or research areas would study this topic
4. **Create Search Terms**: Generate alternative terms, synonyms, and related phrases that researchers might use

**Guidelines:**
- Focus on academic and scientific terminology
- Include both broad and specific terms
- Consider medical, scientific, or technical terminology if relevant
- Think about how researchers would describe this topic in papers
- Include methodological terms if applicable (e.g., "meta-analysis", "randomized controlled trial", "longitudinal study")

**Examples:**

Statement: "Vitamin D deficiency is linked to increased risk of depression"
-> keywords: ["vitamin D deficiency", "depression", "mental health", "mood disorders", "vitamin D supplementation"]
-> research_areas: ["nutrition", "psychiatry", "endocrinology", "mental health", "preventive medicine"]
-> search_terms: ["25-hydroxyvitamin D", "seasonal affective disorder", "major depressive disorder", "micronutrient deficiency", "vitamin D3"]

Statement: "Social media use increases anxiety in teenagers"
-> keywords: ["social media", "anxiety", "teenagers", "adolescents", "mental health"]
-> research_areas: ["psychology", "digital health", "adolescent development", "social psychology"]
-> search_terms: ["social networking sites", "screen time", "digital media", "generalized anxiety disorder", "adolescent mental health"]

Also provide "query": a primary search query for OpenAlex.

Create a comprehensive search strategy for: "{statement}\""""

    def _optimization_prompt(self, statement: str, terms: SearchTermsExtraction) -> str:
        return f"""You are an expert in OpenAlex API search optimization. Create the most effective search query using Boolean operators (AND, OR) and proper syntax.

**Original Statement:** "{statement}"
**Keywords:** {json.dumps(terms.keywords)}
**Research Areas:** {json.dumps(terms.research_areas)}
**Search Terms:** {json.dumps(terms.search_terms)}

**OpenAlex Search Rules:**
1. Use AND to combine essential concepts that must appear together
2. Use OR to group synonyms and alternative terms
3. Use "exact phrases" in quotes for specific technical terminology
4. Use parentheses for proper grouping and precedence
5. Use at most 6-8 OR terms per group
6. Focus on the most important 2-3 core concepts joined with AND
7. Group related synonyms with OR within parentheses

**Examples of good queries:**
- ("vitamin D deficiency" OR "25-hydroxyvitamin D") AND (depression OR "mood disorders" OR "mental health")
- ("climate change" OR "global warming") AND ("extreme weather" OR "weather patterns" OR "climate variability")
- ("social media" OR "social networking") AND (anxiety OR "mental health") AND (teenagers OR adolescents)

Prioritize terms that researchers would actually use in papers. Return only the query string in "optimized_query"."""
