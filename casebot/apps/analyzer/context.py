from dataclasses import dataclass, field
from typing import Optional

from casebot.utils.schemas import CaseSummary, CaseText


@dataclass
class AnalysisContext:
    """
    Conversation state for one user of the analyzer.

    Owned by whoever drives the pipeline (the CLI chat loop, one HTTP app
    instance) and passed explicitly to every step that needs it.
    """

    summaries: Optional[dict[str, CaseSummary]] = None
    history: list[dict[str, str]] = field(default_factory=list)
    cases: list[CaseText] = field(default_factory=list)

    @property
    def ready(self) -> bool:
        return self.summaries is not None

    def start(self, summaries: dict[str, CaseSummary], cases: list[CaseText], question: str, answer: str) -> None:
        """Replace the state with the result of a fresh analysis."""
        self.summaries = summaries
        self.cases = cases
        self.history = []
        self.record(question, answer)

    def record(self, question: str, answer: str) -> None:
        self.history.append({"role": "user", "content": question})
        self.history.append({"role": "assistant", "content": answer})
