# START OF FILE taskpilot/tools/alternatives.py
import logging
from typing import List, Optional

from taskpilot.tools.base import AlternativeSuggestion, sort_tiers
from taskpilot.tools.catalogue import ToolCatalogue

logger = logging.getLogger(__name__)

KEYWORD_SCORE = 20
NAME_SCORE = 30
MAX_SUGGESTIONS = 3


class AlternativeToolMatcher:
    """
    Keyword-similarity search over the tool catalogue, used only when a requested
    tool does not exist.
    """

    def __init__(self, catalogue: Optional[ToolCatalogue] = None, max_suggestions: int = MAX_SUGGESTIONS):
        self.catalogue = catalogue or ToolCatalogue()
        self.max_suggestions = max_suggestions

    def score(self, unmatched_name: str, tool_name: str) -> int:
        descriptor = self.catalogue.get(tool_name)
        requested = (unmatched_name or "").strip().lower()
        if not descriptor or not requested:
            return 0

        confidence = 0
        for keyword in descriptor.keywords:
            if keyword in requested or requested in keyword:
                confidence += KEYWORD_SCORE

        first_segment = requested.split("_")[0]
        if requested in descriptor.name or (first_segment and first_segment in descriptor.name):
            confidence += NAME_SCORE
        return confidence

    def suggest(self, unmatched_name: str) -> List[AlternativeSuggestion]:
        """Top scoring catalogue tools, best first. Empty when nothing overlaps."""
        scored = []
        for descriptor in self.catalogue:
            confidence = self.score(unmatched_name, descriptor.name)
            if confidence > 0:
                scored.append(AlternativeSuggestion(
                    tool_name=descriptor.name,
                    description=descriptor.description,
                    confidence_score=confidence,
                    required_tiers=sort_tiers(descriptor.required_tiers),
                ))
        # sorted() is stable, so ties keep catalogue order
        ranked = sorted(scored, key=lambda suggestion: suggestion.confidence_score, reverse=True)
        suggestions = ranked[:self.max_suggestions]
        logger.debug(f"AlternativeToolMatcher: '{unmatched_name}' -> {[(s.tool_name, s.confidence_score) for s in suggestions]}")
        return suggestions
