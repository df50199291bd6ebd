"""
Engine Module - Round/session progression and cross-session comparison.

Components:
- state: Immutable DrillState and the reduce() transition function
- drill: DrillEngine, the effect layer (storage, timeouts, retries)
- trend: In-session trend tags (first/improved/same/deteriorated)
- comparison: Cross-session status classification and deltas
- timer: Stopwatch and cancelable timeout schedulers
"""

from timestables.engine.comparison import (
    ComparisonStats,
    ExerciseImprovement,
    ExerciseStatus,
    ImprovementDeltas,
    SessionComparison,
    compare_sessions,
)
from timestables.engine.drill import DrillEngine
from timestables.engine.state import DrillErrorState, DrillState, Phase, reduce
from timestables.engine.timer import (
    ExerciseTimer,
    ManualTimeoutScheduler,
    ScheduledTask,
    ThreadingTimeoutScheduler,
)
from timestables.engine.trend import classify_attempt

__all__ = [
    "ComparisonStats",
    "ExerciseImprovement",
    "ExerciseStatus",
    "ImprovementDeltas",
    "SessionComparison",
    "compare_sessions",
    "DrillEngine",
    "DrillErrorState",
    "DrillState",
    "Phase",
    "reduce",
    "ExerciseTimer",
    "ManualTimeoutScheduler",
    "ScheduledTask",
    "ThreadingTimeoutScheduler",
    "classify_attempt",
]
