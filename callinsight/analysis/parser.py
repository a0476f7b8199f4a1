"""Lead analysis extraction from post-call webhook payloads"""

import json
import math
from typing import Any, Dict, Optional, Tuple

import structlog

from callinsight.analysis.literal import normalize_literal
from callinsight.errors import AnalysisParseError, MissingAnalysisData
from callinsight.schemas.analysis import ParsedAnalysis

logger = structlog.get_logger()

# Consulted in order inside analysis.data_collection_results
ANALYSIS_CANDIDATE_KEYS = ("default", "Basic CTA", "main", "primary")

# (category, label field, score field)
CATEGORIES = (
    ("intent", "intent_level", "intent_score"),
    ("urgency", "urgency_level", "urgency_score"),
    ("budget", "budget_constraint", "budget_score"),
    ("fit", "fit_alignment", "fit_score"),
    ("engagement", "engagement_health", "engagement_score"),
)

CTA_FIELDS = (
    "cta_pricing_clicked",
    "cta_demo_clicked",
    "cta_followup_clicked",
    "cta_sample_clicked",
    "cta_escalated_to_human",
)

CATEGORY_SCORE_MAX = 3
TOTAL_SCORE_MAX = 100
MAX_LABEL_LENGTH = 50
MAX_TEXT_LENGTH = 255
MAX_DATETIME_LENGTH = 64

FLAG_VALUES = {
    "yes": True,
    "y": True,
    "true": True,
    "1": True,
    "no": False,
    "n": False,
    "false": False,
    "0": False,
}

CALL_SUCCESS_VALUES = {
    "success": True,
    "successful": True,
    "true": True,
    "failure": False,
    "failed": False,
    "false": False,
}


def locate_analysis_value(analysis: Any) -> Tuple[str, Any]:
    """
    Find the analysis value among the known data collection keys.

    Returns the matching key and its raw value. Raises MissingAnalysisData
    listing the keys that were present when none of the candidates match.
    """
    results = analysis.get("data_collection_results") if isinstance(analysis, dict) else None
    if not isinstance(results, dict):
        raise MissingAnalysisData([])

    for key in ANALYSIS_CANDIDATE_KEYS:
        entry = results.get(key)
        value = entry.get("value") if isinstance(entry, dict) else None
        if value not in (None, "", {}):
            return key, value

    raise MissingAnalysisData(list(results.keys()))


def parse_analysis_literal(value: Any) -> Dict[str, Any]:
    """Turn the raw analysis value into a dict"""
    if isinstance(value, dict):
        return value
    if not isinstance(value, str):
        raise AnalysisParseError(
            f"Analysis value has unsupported type {type(value).__name__}",
            normalized=repr(value),
        )

    normalized = value
    try:
        normalized = normalize_literal(value)
        result = json.loads(normalized)
    except ValueError as e:
        raise AnalysisParseError(f"Could not parse analysis literal: {e}", normalized=normalized) from e

    # Double encoded JSON
    if isinstance(result, str):
        return parse_analysis_literal(result)

    if not isinstance(result, dict):
        raise AnalysisParseError("Analysis literal is not an object", normalized=normalized)

    return result


def _text(value: Any, max_length: Optional[int] = None) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value:
        return None
    if max_length is not None and len(value) > max_length:
        return None
    return value


def _score(value: Any, maximum: int) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    return int(min(max(round(value), 0), maximum))


def _flag(value: Any, table: Dict[str, bool] = FLAG_VALUES) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        value = str(int(value)) if value in (0, 1) else None
    if not isinstance(value, str):
        return None
    return table.get(value.strip().lower())


def _reasoning(data: Dict[str, Any]) -> Tuple[Optional[str], Dict[str, str]]:
    overall = data.get("reasoning")
    per_category = {}

    if isinstance(overall, dict):
        for category, _, _ in CATEGORIES:
            text = _text(overall.get(category))
            if text:
                per_category[category] = text
        overall = overall.get("overall") or overall.get("summary")

    for category, _, _ in CATEGORIES:
        text = _text(data.get(f"{category}_reasoning"))
        if text:
            per_category[category] = text

    return _text(overall), per_category


def parse_analysis(analysis: Any) -> ParsedAnalysis:
    """
    Parse the ``analysis`` block of a post-call webhook.

    Pure and deterministic. Malformed sub-fields become None instead of
    failing the whole record; only a missing or unparseable analysis value
    raises (MissingAnalysisData, AnalysisParseError).
    """
    source, raw = locate_analysis_value(analysis)
    data = parse_analysis_literal(raw)

    fields = {"analysis_source": source}

    scores = []
    for _, label_field, score_field in CATEGORIES:
        fields[label_field] = _text(data.get(label_field), MAX_LABEL_LENGTH)
        score = _score(data.get(score_field), CATEGORY_SCORE_MAX)
        fields[score_field] = score
        scores.append(score)

    total = _score(data.get("total_score"), TOTAL_SCORE_MAX)
    if total is None and all(score is not None for score in scores):
        total = round(sum(scores) / (CATEGORY_SCORE_MAX * len(CATEGORIES)) * TOTAL_SCORE_MAX)
    fields["total_score"] = total
    fields["lead_status_tag"] = _text(data.get("lead_status_tag"), MAX_LABEL_LENGTH)

    fields["reasoning"], fields["category_reasoning"] = _reasoning(data)

    for name in CTA_FIELDS:
        fields[name] = _flag(data.get(name))

    extraction = data.get("extraction")
    if not isinstance(extraction, dict):
        extraction = {}
    fields["extracted_name"] = _text(extraction.get("name"), MAX_TEXT_LENGTH)
    fields["extracted_email"] = _text(
        extraction.get("email_address") or extraction.get("email"), MAX_TEXT_LENGTH
    )
    fields["extracted_company"] = _text(extraction.get("company_name"), MAX_TEXT_LENGTH)
    fields["smart_notification"] = _text(extraction.get("smartnotification"))
    fields["demo_book_datetime"] = _text(
        data.get("demo_book_datetime") or extraction.get("demo_book_datetime"), MAX_DATETIME_LENGTH
    )

    fields["call_successful"] = _flag(analysis.get("call_successful"), CALL_SUCCESS_VALUES)
    fields["transcript_summary"] = _text(analysis.get("transcript_summary"))
    fields["call_summary_title"] = _text(analysis.get("call_summary_title"), MAX_TEXT_LENGTH)

    logger.debug("Analysis parsed", source=source, total_score=total)
    return ParsedAnalysis(**fields)
