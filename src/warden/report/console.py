"""
Console report generator for Warden.

Renders evaluator results for the terminal using Rich.

Design Principles:
    - Verdict first: the decision line comes before any detail
    - Severity at a glance: colors follow risk, not category
    - Stable layout: the same result always renders the same way
"""

from collections.abc import Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from warden.engine import TemplateAssessment
from warden.policy.commands import highest_severity
from warden.schema import (
    AuditVerificationResult,
    CommandSeverity,
    DangerousCommandMatch,
    PathValidationResult,
    ProcessedCommand,
    SignatureVerificationResult,
    TemplateSignature,
)

# Status icons
ICON_PASS = "[green]✓[/green]"
ICON_FAIL = "[red]✗[/red]"
ICON_CONFIRM = "[yellow]?[/yellow]"

SEVERITY_STYLES: dict[CommandSeverity, str] = {
    CommandSeverity.LOW: "dim",
    CommandSeverity.MEDIUM: "yellow",
    CommandSeverity.HIGH: "red",
    CommandSeverity.CRITICAL: "bold red",
}


def print_matches(
    console: Console,
    matches: Sequence[DangerousCommandMatch],
    title: str = "Dangerous Commands",
) -> None:
    """Print a table of dangerous command matches."""
    if not matches:
        console.print(f"{ICON_PASS} No dangerous commands found")
        return

    severity = highest_severity(matches)
    console.print(
        f"{ICON_FAIL} {len(matches)} match(es), highest severity "
        f"[{SEVERITY_STYLES[severity]}]{severity.value}[/{SEVERITY_STYLES[severity]}]"
    )
    console.print()

    table = Table(title=title, show_header=True, header_style="bold", expand=True)
    table.add_column("Command", style="cyan", width=16)
    table.add_column("Severity", width=10)
    table.add_column("Category", width=14)
    table.add_column("Reason", overflow="fold")

    for match in matches:
        style = SEVERITY_STYLES[match.severity]
        reason = match.reason
        if match.suggestion:
            reason = f"{reason}\n[dim]{match.suggestion}[/dim]"
        table.add_row(
            match.command_id,
            f"[{style}]{match.severity.value}[/{style}]",
            match.category,
            reason,
        )

    console.print(table)


def print_path_result(console: Console, path: str, operation: str, result: PathValidationResult) -> None:
    if result.valid:
        console.print(f"{ICON_PASS} {operation} allowed: [bold]{path}[/bold]")
    else:
        console.print(f"{ICON_FAIL} {operation} denied: [bold]{path}[/bold]")
        console.print(f"  [yellow]{result.reason}[/yellow]")


def print_processed_command(console: Console, processed: ProcessedCommand) -> None:
    icon = ICON_PASS if processed.safe else ICON_FAIL
    console.print(f"{icon} {processed.command}")
    for issue in processed.issues:
        console.print(f"  [yellow]{issue}[/yellow]")


def print_signature(console: Console, signature: TemplateSignature) -> None:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Algorithm", signature.algorithm)
    table.add_row("Signature", f"[bold]{signature.signature}[/bold]")
    table.add_row("Signer", signature.signer)
    table.add_row("Timestamp", signature.timestamp)
    console.print(table)


def print_verification(console: Console, result: SignatureVerificationResult) -> None:
    if result.valid:
        console.print(f"{ICON_PASS} Signature valid")
    else:
        console.print(f"{ICON_FAIL} Signature invalid: [yellow]{result.error}[/yellow]")


def print_audit_verification(console: Console, result: AuditVerificationResult) -> None:
    if result.valid:
        console.print(f"{ICON_PASS} Audit log intact ({result.total_entries} entries)")
        return

    console.print(
        f"{ICON_FAIL} Audit log tampered: {result.tampered_entries} of "
        f"{result.total_entries} entries"
    )
    indices = ", ".join(str(i) for i in result.tampered_indices[:10])
    if len(result.tampered_indices) > 10:
        indices += f" ... and {len(result.tampered_indices) - 10} more"
    console.print(f"  [dim]Indices:[/dim] {indices}")


def print_assessment(console: Console, assessment: TemplateAssessment, verbose: bool = False) -> None:
    """Print the verdict panel, reasons and, when verbose, every match."""
    if not assessment.allowed:
        icon, verdict, style = ICON_FAIL, "DENIED", "red"
    elif assessment.requires_confirmation:
        icon, verdict, style = ICON_CONFIRM, "CONFIRM", "yellow"
    else:
        icon, verdict, style = ICON_PASS, "ALLOWED", "green"

    header = Text()
    header.append(" Template ", style="bold")
    header.append(assessment.template_id, style="bold cyan")
    header.append(" │ ", style="dim")
    header.append(verdict, style=f"bold {style}")
    header.append(" ")
    header.append_text(Text.from_markup(icon))
    console.print(Panel(header, expand=False))

    signature = {True: "valid", False: "invalid", None: "not checked"}[assessment.signature_valid]
    console.print(f"  [dim]Trust level:[/dim] {assessment.trust_level.value}")
    console.print(f"  [dim]Signature:[/dim]   {signature}")
    console.print(f"  [dim]Matches:[/dim]     {len(assessment.matches)}")

    if assessment.reasons:
        console.print()
        console.print("[bold]Reasons[/bold]")
        for reason in assessment.reasons:
            console.print(f"  • {reason}")

    if verbose and assessment.matches:
        console.print()
        print_matches(console, assessment.matches)
