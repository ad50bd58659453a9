"""
CLI entry point for Warden.

This module provides the Typer-based command-line interface for Warden.
The CLI is a host: it reads files and environment variables, builds a
SecurityEngine, and renders results. The evaluators themselves never do
I/O.

Commands:
    scan          Scan a template for dangerous commands
    check-path    Check whether a path may be read or written
    sanitize      Sanitize a variable value and check it for injection
    sign          Sign a template file
    verify        Verify a template file signature
    audit-verify  Verify the integrity of an exported audit log
    assess        Run every evaluator against a template

Secrets:
    WARDEN_SIGNING_KEY  HMAC key for sign, verify and assess
    WARDEN_AUDIT_KEY    HMAC key for audit-verify

Exit codes: 0 when the checked thing passes, 1 when it fails or on error.
"""

import json
import logging
import sys
import traceback
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console

from warden import __version__
from warden.audit.log import TemplateAuditLog
from warden.config import AuditConfig, RotationPolicy, SecurityConfig, load_security_config
from warden.engine import SecurityEngine
from warden.errors import WardenError
from warden.report import (
    build_assessment_dict,
    build_report_dict,
    build_scan_dict,
    generate_json_report,
    print_assessment,
    print_audit_verification,
    print_matches,
    print_path_result,
    print_processed_command,
    print_signature,
    print_verification,
)
from warden.schema import (
    CommandSeverity,
    FileOperation,
    PermissionLevel,
    TemplateDocument,
    TemplateSignature,
    load_template_from_string,
)
from warden.trust.signing import SIGNATURE_ALGORITHM, template_signing_content

# Initialize Typer app with metadata
app = typer.Typer(
    name="warden",
    help="Decide whether shell templates may run, and prove what was decided.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()

# Shared option types
ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help="Path to a security config YAML file.",
        exists=True,
        readable=True,
        resolve_path=True,
    ),
]
JsonOption = Annotated[
    bool,
    typer.Option(
        "--json",
        help="Output results in JSON format.",
    ),
]
DebugOption = Annotated[
    bool,
    typer.Option(
        "--debug",
        help="Show full error tracebacks.",
    ),
]
RawOption = Annotated[
    bool,
    typer.Option(
        "--raw",
        help="Use the file bytes as-is instead of the canonical template.",
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]warden[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            help="Log evaluator decisions to stderr.",
        ),
    ] = False,
    debug_logging: Annotated[
        bool,
        typer.Option(
            "--log-debug",
            help="Log everything, including pass decisions, to stderr.",
        ),
    ] = False,
) -> None:
    """
    Warden - trust and execution policy for shell templates.

    Scan templates for dangerous commands, check paths, sign and verify
    templates, and verify exported audit logs.
    """
    if debug_logging:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.ERROR
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# =============================================================================
# Helpers
# =============================================================================


def _load_config(config_path: Path | None) -> SecurityConfig:
    return load_security_config(config_path) if config_path else SecurityConfig()


def _fail(error_type: str, message: str, json_output: bool, debug: bool) -> typer.Exit:
    """Report an error in the selected format and return the exit to raise."""
    if json_output:
        _output_json_error(error_type, message, debug)
    else:
        console.print(f"[red]Error: {message}[/red]")
        if debug:
            console.print(f"[dim]{traceback.format_exc()}[/dim]")
    return typer.Exit(code=1)


def _output_json(report: dict[str, Any]) -> None:
    print(generate_json_report(report))


def _output_json_error(error_type: str, message: str, include_traceback: bool = False) -> None:
    """Output an error in JSON format."""
    output: dict[str, Any] = {
        "error": True,
        "error_type": error_type,
        "message": message,
    }
    if include_traceback:
        output["traceback"] = traceback.format_exc()
    print(json.dumps(output, indent=2))


def _read_template(path: Path, json_output: bool, debug: bool) -> TemplateDocument:
    try:
        return load_template_from_string(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError, ValidationError) as e:
        raise _fail("template_load_error", f"Failed to load template {path}: {e}", json_output, debug) from e


def _signing_content(path: Path, raw: bool, json_output: bool, debug: bool) -> str:
    if raw:
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise _fail("file_error", str(e), json_output, debug) from e
    template = _read_template(path, json_output, debug)
    return template_signing_content(template)


def _require_key(key: str | None, envvar: str, json_output: bool, debug: bool) -> str:
    if not key:
        raise _fail("missing_key", f"No key given; set {envvar} or pass --key", json_output, debug)
    return key


# =============================================================================
# Commands
# =============================================================================


@app.command()
def scan(
    template_path: Annotated[
        Path,
        typer.Argument(
            help="Path to the template YAML file.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    fail_on: Annotated[
        CommandSeverity,
        typer.Option(
            "--fail-on",
            help="Exit with 1 when a match is at or above this severity.",
        ),
    ] = CommandSeverity.HIGH,
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Scan a template for dangerous commands.

    Example:
        $ warden scan deploy.yaml --fail-on critical
    """
    try:
        engine = SecurityEngine(_load_config(config_path))
    except WardenError as e:
        raise _fail("config_error", e.message, json_output, debug) from e

    template = _read_template(template_path, json_output, debug)
    matches = engine.detector.scan_template(template)

    if json_output:
        _output_json(build_scan_dict(template.id, matches))
    else:
        print_matches(console, matches)

    if any(m.severity.rank >= fail_on.rank for m in matches):
        raise typer.Exit(code=1)


@app.command("check-path")
def check_path(
    path: Annotated[str, typer.Argument(help="Path to check.")],
    write: Annotated[
        bool,
        typer.Option(
            "--write",
            "-w",
            help="Check for writing instead of reading.",
        ),
    ] = False,
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Check whether a template may read or write a path.

    Example:
        $ warden check-path ./notes.md --write
    """
    try:
        engine = SecurityEngine(_load_config(config_path))
    except WardenError as e:
        raise _fail("config_error", e.message, json_output, debug) from e

    operation = FileOperation.WRITE if write else FileOperation.READ
    result = engine.check_path(path, operation)

    if json_output:
        _output_json(build_report_dict(
            "path",
            path=path,
            operation=operation.value,
            **result.model_dump(mode="json"),
        ))
    else:
        print_path_result(console, path, operation.value, result)

    if not result.valid:
        raise typer.Exit(code=1)


@app.command()
def sanitize(
    value: Annotated[str, typer.Argument(help="Variable value to sanitize.")],
    into: Annotated[
        Optional[str],
        typer.Option(
            "--into",
            help="Command template to interpolate the value into as ${value}.",
        ),
    ] = None,
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Sanitize a variable value and check the result for injection syntax.

    Example:
        $ warden sanitize 'x; rm -rf /' --into 'echo ${value}'
    """
    try:
        engine = SecurityEngine(_load_config(config_path))
    except WardenError as e:
        raise _fail("config_error", e.message, json_output, debug) from e

    processed = engine.process_command(into or "${value}", {"value": value})
    sanitized = engine.injection.sanitize_variable(value)

    if json_output:
        _output_json(build_report_dict(
            "sanitize",
            original=value,
            sanitized=sanitized,
            **processed.model_dump(mode="json"),
        ))
    else:
        print_processed_command(console, processed)

    if not processed.safe:
        raise typer.Exit(code=1)


@app.command()
def sign(
    file_path: Annotated[
        Path,
        typer.Argument(
            help="Path to the template file to sign.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    signer: Annotated[
        str,
        typer.Option(
            "--signer",
            "-s",
            help="Name recorded as the signer.",
        ),
    ],
    key: Annotated[
        Optional[str],
        typer.Option(
            "--key",
            envvar="WARDEN_SIGNING_KEY",
            help="HMAC signing key.",
            show_default=False,
        ),
    ] = None,
    fingerprint: Annotated[
        Optional[str],
        typer.Option(
            "--fingerprint",
            help="Public key fingerprint to record with the signature.",
        ),
    ] = None,
    raw: RawOption = False,
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Sign a template file.

    Templates are signed in canonical form without their embedded
    signature, so the result can be stored in security.signature.
    Use --raw to sign the file bytes instead.

    Example:
        $ WARDEN_SIGNING_KEY=... warden sign deploy.yaml --signer release-bot
    """
    secret = _require_key(key, "WARDEN_SIGNING_KEY", json_output, debug)
    try:
        engine = SecurityEngine(_load_config(config_path), signing_key=secret)
    except WardenError as e:
        raise _fail("config_error", e.message, json_output, debug) from e

    content = _signing_content(file_path, raw, json_output, debug)

    signature = engine.signer.create_signature(content, signer, public_key_fingerprint=fingerprint)

    if json_output:
        _output_json(build_report_dict("signature", signature=signature))
    else:
        print_signature(console, signature)


@app.command()
def verify(
    file_path: Annotated[
        Path,
        typer.Argument(
            help="Path to the signed template file.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    signature: Annotated[str, typer.Argument(help="Hex signature to verify.")],
    algorithm: Annotated[
        str,
        typer.Option(
            "--algorithm",
            help="Algorithm tag of the signature.",
        ),
    ] = SIGNATURE_ALGORITHM,
    key: Annotated[
        Optional[str],
        typer.Option(
            "--key",
            envvar="WARDEN_SIGNING_KEY",
            help="HMAC signing key.",
            show_default=False,
        ),
    ] = None,
    raw: RawOption = False,
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Verify a template file signature.

    Uses the same canonical form as sign unless --raw is given.

    Example:
        $ WARDEN_SIGNING_KEY=... warden verify deploy.yaml 3f2a...
    """
    secret = _require_key(key, "WARDEN_SIGNING_KEY", json_output, debug)
    try:
        engine = SecurityEngine(_load_config(config_path), signing_key=secret)
    except WardenError as e:
        raise _fail("config_error", e.message, json_output, debug) from e

    content = _signing_content(file_path, raw, json_output, debug)

    metadata = TemplateSignature(
        algorithm=algorithm,
        signature=signature,
        timestamp="",
        signer="",
    )
    result = engine.signer.verify_signature(content, metadata)

    if json_output:
        _output_json(build_report_dict("verification", valid=result.valid, error=result.error))
    else:
        print_verification(console, result)

    if not result.valid:
        raise typer.Exit(code=1)


@app.command("audit-verify")
def audit_verify(
    export_path: Annotated[
        Path,
        typer.Argument(
            help="Path to an exported audit log (JSON list of entries).",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    key: Annotated[
        Optional[str],
        typer.Option(
            "--key",
            envvar="WARDEN_AUDIT_KEY",
            help="HMAC audit key.",
            show_default=False,
        ),
    ] = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Verify the integrity of an exported audit log.

    Example:
        $ WARDEN_AUDIT_KEY=... warden audit-verify audit.json
    """
    secret = _require_key(key, "WARDEN_AUDIT_KEY", json_output, debug)
    try:
        data = json.loads(export_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise _fail("file_error", f"Failed to read audit export: {e}", json_output, debug) from e
    if not isinstance(data, list):
        raise _fail("file_error", "Audit export must be a JSON list", json_output, debug)

    audit = TemplateAuditLog(secret, AuditConfig(rotation_policy=RotationPolicy.NONE))
    try:
        audit.import_entries(data)
    except WardenError as e:
        raise _fail("audit_import_error", e.message, json_output, debug) from e

    result = audit.verify_integrity()

    if json_output:
        _output_json(build_report_dict("audit", **result.model_dump(mode="json")))
    else:
        print_audit_verification(console, result)

    if not result.valid:
        raise typer.Exit(code=1)


@app.command()
def assess(
    template_path: Annotated[
        Path,
        typer.Argument(
            help="Path to the template YAML file.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    level: Annotated[
        PermissionLevel,
        typer.Option(
            "--level",
            "-l",
            help="Permission level granted to the template.",
        ),
    ] = PermissionLevel.ELEVATED,
    publishers_path: Annotated[
        Optional[Path],
        typer.Option(
            "--publishers",
            help="Path to an exported publisher registry (JSON list).",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    key: Annotated[
        Optional[str],
        typer.Option(
            "--key",
            envvar="WARDEN_SIGNING_KEY",
            help="HMAC signing key used to verify an embedded signature.",
            show_default=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--details",
            help="Show every dangerous command match.",
        ),
    ] = False,
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
    debug: DebugOption = False,
) -> None:
    """
    Run every evaluator against a template and print the verdict.

    Exits with 1 when the template is denied.

    Example:
        $ warden assess deploy.yaml --publishers publishers.json --level elevated
    """
    try:
        engine = SecurityEngine(_load_config(config_path), signing_key=key or None)
        if publishers_path:
            entries = json.loads(publishers_path.read_text(encoding="utf-8"))
            engine.registry.import_publishers(entries)
    except WardenError as e:
        raise _fail("config_error", e.message, json_output, debug) from e
    except (OSError, json.JSONDecodeError) as e:
        raise _fail("file_error", str(e), json_output, debug) from e

    template = _read_template(template_path, json_output, debug)
    assessment = engine.assess_template(
        template,
        engine.permissions.create_default_permissions(level),
    )

    if json_output:
        _output_json(build_assessment_dict(assessment))
    else:
        print_assessment(console, assessment, verbose=verbose)

    if not assessment.allowed:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
