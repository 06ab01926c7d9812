"""
orderseal/cli/verify.py

orderseal verify: signed event journal verification.

Usage:
    orderseal verify <journal> --key-hex <hex>                   Human output
    orderseal verify <journal> --key-hex <hex> --format json     JSON report
    orderseal verify <journal> --key-hex <hex> --quiet           Exit code only

Exit codes:
    0  Journal fully valid (sequence + chain + signatures)
    1  Journal has violations
    2  Error (file missing, malformed JSON, missing fields)
"""

import json
import sys
from pathlib import Path

import click

from orderseal.core.exceptions import JournalError
from orderseal.journal.journal import JournalReport, verify_journal_file


@click.command(name="verify")
@click.argument("journal", type=click.Path())
@click.option(
    "--key-hex",
    required=True,
    help="Journal signer's Ed25519 public key (64 hex chars).",
)
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
    help="Output format.",
)
@click.option(
    "--quiet",
    is_flag=True,
    default=False,
    help="Suppress all output. Use exit code only (0=valid, 1=invalid, 2=error).",
)
def verify_command(journal: str, key_hex: str, fmt: str, quiet: bool) -> None:
    """
    Verify a signed event journal: sequence, hash chain and signatures.

    JOURNAL is the path to a .jsonl journal file.
    """
    journal_path = Path(journal)

    if not journal_path.exists():
        _emit_error(f"Journal not found: {journal}", fmt, quiet)
        sys.exit(2)

    try:
        report = verify_journal_file(journal_path, key_hex)
    except JournalError as e:
        _emit_error(str(e), fmt, quiet)
        sys.exit(2)
    except (OSError, ValueError) as e:
        _emit_error(f"Could not read journal: {e}", fmt, quiet)
        sys.exit(2)

    if quiet:
        sys.exit(0 if report.is_valid else 1)

    if fmt == "json":
        click.echo(json.dumps({"orderseal_verify": dict(report.to_dict(), journal=str(journal_path))}, indent=2))
    else:
        _output_human(report, journal_path)

    sys.exit(0 if report.is_valid else 1)


# ── Output ────────────────────────────────────────────────────

def _output_human(report: JournalReport, journal_path: Path) -> None:
    status = "VALID" if report.is_valid else "INVALID"
    click.echo(f"  {status}  {journal_path}")
    click.echo(f"  {'entries':<18} {report.total_entries}")
    click.echo(f"  {'chain':<18} {'intact' if report.chain_valid else 'BROKEN'}")
    click.echo(
        f"  {'signatures':<18} {report.valid_signatures} valid, "
        f"{report.invalid_signatures} invalid"
    )
    for event_type, count in sorted(report.by_type.items()):
        click.echo(f"  {event_type:<18} {count}")
    if report.head_hash:
        click.echo(f"  {'head hash':<18} {report.head_hash}")
    for violation in report.violations:
        click.echo(f"  ! {violation}")


def _emit_error(msg: str, fmt: str, quiet: bool) -> None:
    """Emit error in the requested format. Never raises."""
    if quiet:
        return
    if fmt == "json":
        click.echo(json.dumps({
            "orderseal_verify": {"error": msg, "is_valid": False}
        }))
    else:
        click.echo(f"ERROR: {msg}", err=True)
