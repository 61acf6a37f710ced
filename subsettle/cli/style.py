"""
Terminal styling shared by the CLI commands.

Thin layer over click.style. click.echo already drops the escape codes
when stdout is not a terminal; --no-color turns styling off everywhere.
"""

import click

_enabled = True


def use_color(enabled: bool) -> None:
    global _enabled
    _enabled = enabled


def _paint(text: str, **styles) -> str:
    return click.style(text, **styles) if _enabled else text


def good(text: str) -> str:
    return _paint(text, fg="green")


def bad(text: str) -> str:
    return _paint(text, fg="red")


def warn(text: str) -> str:
    return _paint(text, fg="yellow")


def accent(text: str) -> str:
    return _paint(text, fg="cyan")


def strong(text: str) -> str:
    return _paint(text, bold=True)


def muted(text: str) -> str:
    return _paint(text, dim=True)


def row_ok(label: str, value: str) -> str:
    return f"  {muted(f'{label:<16}')}  {good('OK  ')}  {value}"


def row_fail(label: str, value: str) -> str:
    return f"  {muted(f'{label:<16}')}  {bad('FAIL')}  {value}"


def row_info(label: str, value: str) -> str:
    return f"  {muted(f'{label:<16}')}        {value}"
