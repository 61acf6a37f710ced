"""
subsettle/cli/verify.py

subsettle verify - settlement journal verification
==================================================

Usage:
    subsettle verify <journal>                  Human output (default)
    subsettle verify <journal> --format json    Machine-readable JSON
    subsettle verify <journal> --quiet          Exit code only
    subsettle verify <journal> --no-color       Disable ANSI

Exit codes:
    0  Journal fully valid  (chain + signatures + schema + sequence)
    1  Journal has violations
    2  Error  (file missing, malformed JSON, missing field)
"""

import json
import sys
from pathlib import Path

import click

from subsettle.cli import style
from subsettle.core.exceptions import JournalError
from subsettle.ledger.journal import JournalSummary, verify_journal


# ── CLI command ───────────────────────────────────────────────────────────────

@click.command(name="verify")
@click.argument("journal", type=click.Path(exists=False))
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
    help="Output format: human (default) or json.",
)
@click.option(
    "--quiet",
    is_flag=True,
    default=False,
    help="Suppress all output. Use exit code only (0=valid, 1=invalid, 2=error).",
)
@click.option(
    "--no-color",
    is_flag=True,
    default=False,
    help="Disable ANSI color output.",
)
def verify_command(journal: str, fmt: str, quiet: bool, no_color: bool) -> None:
    """
    Verify a settlement journal: chain, signatures, schema, sequence.

    JOURNAL is the path to a .jsonl journal written by `subsettle run`
    or by a BillingService with a journal attached.
    """
    style.use_color(not no_color)
    journal_path = Path(journal)

    try:
        summary = verify_journal(journal_path)
    except FileNotFoundError as e:
        _emit_error(str(e), fmt, quiet)
        sys.exit(2)
    except JournalError as e:
        _emit_error(str(e), fmt, quiet)
        sys.exit(2)

    if quiet:
        sys.exit(0 if summary.valid else 1)

    if fmt == "json":
        out = summary.to_dict()
        out["journal"] = str(journal_path)
        click.echo(json.dumps({"subsettle_verify": out}, indent=2))
    else:
        _output_human(summary, journal_path)

    sys.exit(0 if summary.valid else 1)


# ── Human output ──────────────────────────────────────────────────────────────

def _output_human(summary: JournalSummary, journal_path: Path) -> None:
    BAR_HEAVY = "═" * 68
    BAR_LIGHT = "─" * 68

    click.echo()
    click.echo(style.strong(f"  {BAR_HEAVY}"))
    click.echo(style.strong(  "  subsettle  ·  Settlement Journal Verification"))
    click.echo(style.strong(f"  {BAR_HEAVY}"))
    click.echo()

    click.echo(style.row_info("Journal", str(journal_path)))
    click.echo(style.row_info("Entries", f"{summary.total_entries:,}"))
    click.echo()

    by_type = {}
    for v in summary.violations:
        by_type.setdefault(v.violation_type, []).append(v)
    total = summary.total_entries

    if "chain_break" not in by_type:
        click.echo(style.row_ok("Chain", "intact, all causal hashes valid"))
    else:
        click.echo(style.row_fail("Chain", style.bad(f"{len(by_type['chain_break'])} break(s) detected")))

    invalid_sigs = len(by_type.get("invalid_signature", []))
    if invalid_sigs == 0:
        click.echo(style.row_ok("Signatures", f"{summary.valid_signatures:,} / {total:,} valid"))
    else:
        click.echo(style.row_fail(
            "Signatures",
            f"{summary.valid_signatures:,} valid  " + style.bad(f"{invalid_sigs:,} INVALID"),
        ))

    if "schema" not in by_type:
        click.echo(style.row_ok("Schema", "all entries conform"))
    else:
        click.echo(style.row_fail("Schema", style.bad(f"{len(by_type['schema'])} violation(s)")))

    if "sequence_gap" not in by_type:
        click.echo(style.row_ok("Sequence", f"0 → {total - 1:,}  (no gaps)" if total else "empty journal"))
    else:
        click.echo(style.row_fail("Sequence", style.bad(f"{len(by_type['sequence_gap'])} gap(s) detected")))

    click.echo()

    if summary.first_timestamp:
        click.echo(style.row_info("First entry", summary.first_timestamp))
    if summary.last_timestamp:
        click.echo(style.row_info("Last entry", summary.last_timestamp))
    short = summary.head_hash[:16] + "..." + summary.head_hash[-8:]
    click.echo(style.row_info("Chain head", style.accent(short)))

    if summary.record_type_counts:
        counts_str = "  ".join(
            f"{style.accent(k)}: {v:,}"
            for k, v in sorted(summary.record_type_counts.items())
        )
        click.echo(style.row_info("Record types", counts_str))
    click.echo()

    if summary.violations:
        click.echo(f"  {BAR_LIGHT}")
        for v in summary.violations:
            type_col = style.warn(f"{v.violation_type:<18}")
            click.echo(f"  {style.bad(str(v.at_sequence)):>6}  {type_col}  {v.detail}")
        click.echo(f"  {BAR_LIGHT}")
        click.echo()

    click.echo(f"  {BAR_LIGHT}")
    if summary.valid:
        click.echo(style.good(style.strong("  VALID  ·  0 violations  ·  journal integrity confirmed")))
    else:
        click.echo(style.bad(style.strong(
            f"  INVALID  ·  {len(summary.violations)} violation(s)  ·  journal integrity compromised"
        )))
    click.echo(f"  {BAR_LIGHT}")
    click.echo()


# ── Error output ──────────────────────────────────────────────────────────────

def _emit_error(msg: str, fmt: str, quiet: bool) -> None:
    if quiet:
        return
    if fmt == "json":
        click.echo(json.dumps({"subsettle_verify": {"error": msg, "valid": False}}))
    else:
        click.echo(style.bad(f"\n  ERROR: {msg}\n"), err=True)
