"""
Aggregation - final answer synthesis and deterministic fallbacks.
"""
from .aggregator import (
    AggregatorNode,
    manual_aggregation,
    templated_concatenation,
    partial_results_message,
    calculator_step_failed
)

__all__ = [
    "AggregatorNode",
    "manual_aggregation",
    "templated_concatenation",
    "partial_results_message",
    "calculator_step_failed"
]
