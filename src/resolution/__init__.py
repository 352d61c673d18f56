"""Error resolution tracking -- fix history, recurrence and effectiveness."""
from src.resolution.recurrence import RecurrenceEvaluator
from src.resolution.scoring import EffectivenessScorer
from src.resolution.snapshot import SnapshotStore
from src.resolution.store import ResolutionStore
from src.resolution.suggestions import FixSuggestionEngine, wilson_lower_bound
from src.resolution.tracker import ResolutionTracker

__all__ = [
    "ResolutionTracker",
    "ResolutionStore",
    "RecurrenceEvaluator",
    "EffectivenessScorer",
    "FixSuggestionEngine",
    "SnapshotStore",
    "wilson_lower_bound",
]
