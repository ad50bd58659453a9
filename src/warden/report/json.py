"""
JSON report generator for Warden.

Builds plain dictionaries from evaluator results for programmatic
consumption. Every report carries the same envelope:

    {"report_version": "1.0", "generated_at": "...", "kind": "...", ...}

Design Principles:
    - Consistent schema: Same envelope for every result kind
    - Human-readable keys: Use descriptive snake_case names
    - ISO timestamps: Standard datetime format
"""

import json
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from warden.engine import TemplateAssessment
from warden.policy.commands import highest_severity
from warden.schema import DangerousCommandMatch

REPORT_VERSION = "1.0"


def build_report_dict(kind: str, **payload: Any) -> dict[str, Any]:
    """Wrap a payload in the report envelope."""
    return {
        "report_version": REPORT_VERSION,
        "generated_at": datetime.now(UTC).isoformat(),
        "kind": kind,
        **payload,
    }


def build_scan_dict(template_id: str | None, matches: Sequence[DangerousCommandMatch]) -> dict[str, Any]:
    severity = highest_severity(matches)
    by_category: dict[str, int] = {}
    for match in matches:
        by_category[match.category] = by_category.get(match.category, 0) + 1

    return build_report_dict(
        "scan",
        template_id=template_id,
        summary={
            "match_count": len(matches),
            "highest_severity": severity.value if severity else None,
            "by_category": by_category,
        },
        matches=[m.model_dump(mode="json") for m in matches],
    )


def build_assessment_dict(assessment: TemplateAssessment) -> dict[str, Any]:
    return build_report_dict("assessment", **assessment.to_dict())


def generate_json_report(report: dict[str, Any], indent: int = 2) -> str:
    """Serialize a report dictionary."""
    return json.dumps(report, indent=indent, default=_json_serializer)


def _json_serializer(obj: Any) -> Any:
    """Custom JSON serializer for non-standard types."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if hasattr(obj, "value"):
        return obj.value
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
