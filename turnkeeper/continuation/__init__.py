"""Truncation classification and structural repair."""

from turnkeeper.continuation.classifier import ClassifierOptions, TruncationClassifier, raw_finish_reason
from turnkeeper.continuation.repair import ContentRepairer, RepairResult

__all__ = [
    "ClassifierOptions",
    "ContentRepairer",
    "RepairResult",
    "TruncationClassifier",
    "raw_finish_reason",
]
