"""Webhook analysis parsing and call classification"""

from callinsight.analysis.parser import parse_analysis, locate_analysis_value, parse_analysis_literal
from callinsight.analysis.classifier import classify_call_source, CallSource

__all__ = [
    "parse_analysis",
    "locate_analysis_value",
    "parse_analysis_literal",
    "classify_call_source",
    "CallSource",
]
