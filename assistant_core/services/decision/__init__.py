"""
Decision layer: signal detectors, context analysis, the response policy,
priority scoring and prompt shaping.
"""

from .context_analyzer import analyze_context
from .decision_engine import decide
from .detectors import extract_signals
from .priority_calculator import bucket_priority, calculate_priority
from .prompt_builder import build_completion_request

__all__ = [
    "analyze_context",
    "decide",
    "extract_signals",
    "calculate_priority",
    "bucket_priority",
    "build_completion_request",
]
