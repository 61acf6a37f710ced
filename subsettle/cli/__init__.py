"""
subsettle/cli/__init__.py

subsettle CLI - root Click command group.

Registered in pyproject.toml as:

    [project.scripts]
    subsettle = "subsettle.cli:cli"
"""

import logging

import click

from subsettle.cli.run import run_command
from subsettle.cli.verify import verify_command


@click.group()
@click.version_option(package_name="subsettle")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Log ledger activity to stderr.")
def cli(verbose: bool) -> None:
    """
    subsettle - prepaid subscription settlement ledger.

    \b
    Commands:
      run       Drive a YAML scenario through a fresh ledger.
      verify    Verify a settlement journal: chain, signatures, schema.

    \b
    Quick start:
      subsettle run scenario.yaml --journal journal.jsonl
      subsettle verify journal.jsonl
      subsettle verify journal.jsonl --quiet && echo "clean"
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


cli.add_command(run_command)
cli.add_command(verify_command)
