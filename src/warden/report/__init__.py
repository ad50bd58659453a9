"""
Reporting module for Warden.

Renders evaluator results for people and programs.

Output formats:
    - Console: Rich terminal output with verdicts and match tables
    - JSON: Structured output with a common report envelope

Example:
    from warden.report import build_scan_dict, generate_json_report, print_matches

    print_matches(console, matches)
    print(generate_json_report(build_scan_dict("tpl-1", matches)))
"""

from warden.report.console import (
    print_assessment,
    print_audit_verification,
    print_matches,
    print_path_result,
    print_processed_command,
    print_signature,
    print_verification,
)
from warden.report.json import (
    build_assessment_dict,
    build_report_dict,
    build_scan_dict,
    generate_json_report,
)

__all__ = [
    "build_assessment_dict",
    "build_report_dict",
    "build_scan_dict",
    "generate_json_report",
    "print_assessment",
    "print_audit_verification",
    "print_matches",
    "print_path_result",
    "print_processed_command",
    "print_signature",
    "print_verification",
]
