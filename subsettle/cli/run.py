"""
subsettle/cli/run.py

subsettle run - drive a YAML scenario through a fresh ledger
============================================================

Usage:
    subsettle run scenario.yaml
    subsettle run scenario.yaml --format json
    subsettle run scenario.yaml --config ledger.yaml --journal out.jsonl

Exit codes:
    0  Every step ran (expected errors included) and money is conserved
    2  Scenario error, unexpected ledger error, conservation failure or a
       journal write failure
"""

import json
import sys
from pathlib import Path
from typing import Optional

import click

from subsettle.cli import style
from subsettle.core.config import LedgerConfig
from subsettle.core.exceptions import SubsettleError
from subsettle.scenario import ScenarioResult, ScenarioRunner, load_scenario


@click.command(name="run")
@click.argument("scenario", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Ledger config YAML. Overrides the scenario's own config block.",
)
@click.option(
    "--journal", "journal_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Append a signed settlement journal to this file.",
)
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
)
@click.option("--no-color", is_flag=True, default=False, help="Disable ANSI color output.")
def run_command(
    scenario:     str,
    config_path:  Optional[str],
    journal_path: Optional[str],
    fmt:          str,
    no_color:     bool,
) -> None:
    """
    Run SCENARIO against an in-memory ledger and print the final state.
    """
    style.use_color(not no_color)

    try:
        config = LedgerConfig.from_yaml(Path(config_path)) if config_path else None
        runner = ScenarioRunner(
            load_scenario(Path(scenario)),
            config=config,
            journal_path=Path(journal_path) if journal_path else None,
        )
        result = runner.run()
    except SubsettleError as e:
        _emit_error(f"{type(e).__name__}: {e}", fmt)
        sys.exit(2)

    totals = result.service.totals()
    conserved = totals["held"] + totals["withdrawn"] == totals["deposited"]

    journal_ok = not result.service.journal_broken

    if fmt == "json":
        out = result.to_dict()
        out["conserved"] = conserved
        out["journal_ok"] = journal_ok
        click.echo(json.dumps(out, indent=2))
    else:
        _output_human(result, conserved)

    sys.exit(0 if conserved and journal_ok else 2)


def _output_human(result: ScenarioResult, conserved: bool) -> None:
    service = result.service
    BAR = "─" * 68

    click.echo()
    click.echo(style.strong(f"  {result.scenario.name}  ·  {len(result.steps)} step(s)  ·  t={service.clock.now()}"))
    click.echo(f"  {BAR}")

    for step in result.steps:
        if step.error:
            click.echo(style.row_info(f"#{step.index} {step.action}", style.warn(f"raised {step.error} (expected)")))
        else:
            click.echo(style.row_info(f"#{step.index} {step.action}", str(step.result)))
    click.echo(f"  {BAR}")

    for p in service.providers_snapshot():
        click.echo(style.row_info(
            f"provider {p.id}",
            f"owner={p.owner} fee={p.fee} balance={p.balance} "
            f"active={p.active} subscribers={sorted(p.subscriber_ids)}",
        ))
    for s in service.subscribers_snapshot():
        click.echo(style.row_info(
            f"subscriber {s.id}",
            f"owner={s.owner} plan={s.plan.value} balance={s.balance} "
            f"active={s.active} last={s.last_settlement_time}",
        ))
    click.echo(f"  {BAR}")

    totals = service.totals()
    line = (
        f"held {totals['held']} + withdrawn {totals['withdrawn']} "
        f"= deposited {totals['deposited']}"
    )
    if conserved:
        click.echo(style.row_ok("Conservation", line))
    else:
        click.echo(style.row_fail("Conservation", style.bad(line)))
    if service.journal_broken:
        click.echo(style.row_fail("Journal", style.bad(f"{service.journal.path} write failed, journal incomplete")))
    elif service.journal is not None:
        click.echo(style.row_info("Journal", f"{service.journal.path} ({service.journal.next_sequence} entries)"))
    click.echo()


def _emit_error(msg: str, fmt: str) -> None:
    if fmt == "json":
        click.echo(json.dumps({"subsettle_run": {"error": msg}}))
    else:
        click.echo(style.bad(f"\n  ERROR: {msg}\n"), err=True)
