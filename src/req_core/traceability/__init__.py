"""Traceability: annotation parsers, the scanner, and coverage reporting."""

from __future__ import annotations

from req_core.traceability.coverage import calculate_coverage, classify, compute_coverage, coverage_report
from req_core.traceability.parsers import (
    AnnotationParser,
    CommentTagParser,
    PythonAnnotationParser,
    default_parsers,
    split_ids,
)
from req_core.traceability.scanner import Classifier, PatternClassifier, TraceabilityScanner

__all__ = [
    "AnnotationParser",
    "Classifier",
    "CommentTagParser",
    "PatternClassifier",
    "PythonAnnotationParser",
    "TraceabilityScanner",
    "calculate_coverage",
    "classify",
    "compute_coverage",
    "coverage_report",
    "default_parsers",
    "split_ids",
]
