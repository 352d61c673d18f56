"""Fix suggestion engine -- recommends fix types that held up elsewhere."""
from __future__ import annotations

import logging
import math
from collections.abc import Iterable

from src.resolution.scoring import EffectivenessScorer
from src.shared.constants import UNSPECIFIED_FIX_TYPE
from src.shared.models.resolution import (
    FixSuggestion,
    ResolutionRecord,
    SuggestionOptions,
)

logger = logging.getLogger(__name__)


def wilson_lower_bound(successes: int, trials: int, z: float) -> float:
    """Lower bound of the Wilson score interval for a success proportion.

    The interval always contains the observed rate, so the bound never
    exceeds ``successes / trials``; for a fixed rate it rises toward that
    rate as *trials* grows.  Returns 0.0 for zero trials.
    """
    if trials <= 0:
        return 0.0
    p = successes / trials
    z2 = z * z
    centre = p + z2 / (2 * trials)
    margin = z * math.sqrt(p * (1 - p) / trials + z2 / (4 * trials * trials))
    bound = (centre - margin) / (1 + z2 / trials)
    return min(p, max(0.0, bound))


class FixSuggestionEngine:
    """Groups records by fix type to recommend fixes for an error.

    Args:
        scorer: Decides which applications of a fix count as successes.
        confidence_z: z-value of the Wilson interval used for confidence.
    """

    def __init__(self, scorer: EffectivenessScorer, confidence_z: float = 0.4) -> None:
        self._scorer = scorer
        self._z = confidence_z

    def suggest(
        self,
        target: ResolutionRecord | None,
        records: Iterable[ResolutionRecord],
        options: SuggestionOptions | None = None,
    ) -> list[FixSuggestion]:
        """Return fix suggestions for the error described by *target*.

        Args:
            target: The error's own record, if it has one.  Its fix type
                selects the group; without one every fix type is eligible.
            records: A stable copy of all records.
            options: Filtering and ordering options.

        Returns:
            Suggestions above ``min_success_rate`` ordered by confidence, or
            every group ordered by ascending success rate when
            ``include_ineffective`` is set.
        """
        options = options or SuggestionOptions()
        target_type = target.fix_type if target is not None else None

        groups: dict[str, list[ResolutionRecord]] = {}
        for record in records:
            key = record.fix_type or UNSPECIFIED_FIX_TYPE
            if target_type is not None and key != target_type:
                continue
            groups.setdefault(key, []).append(record)

        suggestions = [self._summarise(key, members) for key, members in groups.items()]

        if options.include_ineffective:
            suggestions.sort(key=lambda s: (s.success_rate, s.fix_type))
        else:
            suggestions = [
                s for s in suggestions if s.success_rate >= options.min_success_rate
            ]
            suggestions.sort(
                key=lambda s: (-s.confidence, -s.application_count, s.fix_type)
            )

        logger.debug(
            "Suggested %d fix groups (target type %s)", len(suggestions), target_type
        )
        return suggestions[: options.max_results]

    def _summarise(self, fix_type: str, members: list[ResolutionRecord]) -> FixSuggestion:
        scored = sorted(
            ((self._scorer.score(r), r) for r in members),
            key=lambda pair: (-pair[0], pair[1].error_signature),
        )
        applications = len(scored)
        successes = sum(1 for s, _ in scored if s >= self._scorer.threshold)
        best = scored[0][1]
        return FixSuggestion(
            fix_type=fix_type,
            application_count=applications,
            success_count=successes,
            success_rate=successes / applications,
            confidence=wilson_lower_bound(successes, applications, self._z),
            average_effectiveness=sum(s for s, _ in scored) / applications,
            error_signatures=sorted(r.error_signature for _, r in scored),
            fix_description=best.fix_description,
            root_cause=best.root_cause,
            prevention_measures=best.prevention_measures,
        )
