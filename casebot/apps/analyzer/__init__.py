"""
Analyzer App - Summarization, Relevance Ranking and Follow-up Chat

Responsibilities:
- Summarize case texts with the language model, skipping cached summaries
- Rank summarized cases against the user's described situation
- Answer follow-up questions within an explicit AnalysisContext
- Suggest search filters from keywords and context
"""

from casebot.apps.analyzer.context import AnalysisContext
from casebot.apps.analyzer.llm import LLMClient
from casebot.apps.analyzer.ranking import chat, enrich_rankings, get_filter_suggestions, rank_by_relevance
from casebot.apps.analyzer.summarizer import summarize_all, summarize_case

__all__ = [
    "AnalysisContext",
    "LLMClient",
    "chat",
    "enrich_rankings",
    "get_filter_suggestions",
    "rank_by_relevance",
    "summarize_all",
    "summarize_case",
]
