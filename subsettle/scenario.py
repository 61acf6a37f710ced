"""Scenario loader and runner.

A scenario is a YAML document that drives a BillingService against a
ManualClock, one step at a time:

    config:
      epoch_length_seconds: 100
    start: 0
    wallets:
      alice: 1000
    steps:
      - register_provider: {caller: bob, key: bob-1, fee: 100}
      - register_subscriber: {caller: alice, deposit: 250, plan: basic, providers: [1]}
      - advance: 100
      - sweep: {}
      - register_subscriber: {caller: alice, deposit: 10, providers: [1]}
        expect_error: InsufficientDeposit

Each step names exactly one action. A step may carry `expect_error` with
the class name of the SubsettleError it must raise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from subsettle.core import exceptions
from subsettle.core.config import LedgerConfig
from subsettle.core.exceptions import ConfigError, SubsettleError
from subsettle.core.models import Plan
from subsettle.core.time import ManualClock
from subsettle.core.transfers import InMemoryTransferRail
from subsettle.service import BillingService

logger = logging.getLogger(__name__)


@dataclass
class Step:
    """One scenario step."""
    index: int
    action: str
    args: Any
    expect_error: Optional[str] = None


@dataclass
class StepResult:
    index: int
    action: str
    result: Any = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "action": self.action,
            "result": self.result,
            "error": self.error,
        }


@dataclass
class Scenario:
    name: str
    config: Dict[str, Any]
    start: int
    wallets: Dict[str, int]
    steps: List[Step]


@dataclass
class ScenarioResult:
    scenario: Scenario
    service: BillingService
    steps: List[StepResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "scenario": self.scenario.name,
            "now": self.service.clock.now(),
            "steps": [s.to_dict() for s in self.steps],
            "providers": [p.to_dict() for p in self.service.providers_snapshot()],
            "subscribers": [s.to_dict() for s in self.service.subscribers_snapshot()],
            "totals": self.service.totals(),
        }


def load_scenario(path: Path) -> Scenario:
    """Parse a scenario file. Raises ConfigError on anything malformed."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"cannot read scenario {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
    return parse_scenario(data, name=path.stem)


def parse_scenario(data: Any, name: str = "scenario") -> Scenario:
    if not isinstance(data, dict):
        raise ConfigError("scenario must be a mapping")
    raw_steps = data.get("steps") or []
    if not isinstance(raw_steps, list):
        raise ConfigError("steps must be a list")

    steps: List[Step] = []
    for index, raw in enumerate(raw_steps):
        if not isinstance(raw, dict):
            raise ConfigError("step must be a mapping", {"step": index})
        raw = dict(raw)
        expect_error = raw.pop("expect_error", None)
        if len(raw) != 1:
            raise ConfigError("step must name exactly one action", {"step": index, "keys": sorted(raw)})
        (action, args), = raw.items()
        if action not in _ACTIONS:
            raise ConfigError("unknown step action", {"step": index, "action": action})
        if expect_error is not None and not _is_error_name(expect_error):
            raise ConfigError("unknown error name", {"step": index, "expect_error": expect_error})
        steps.append(Step(index, action, args, expect_error))

    wallets = data.get("wallets") or {}
    if not isinstance(wallets, dict):
        raise ConfigError("wallets must be a mapping of account to amount")

    return Scenario(
        name=data.get("name", name),
        config=data.get("config") or {},
        start=int(data.get("start", 0)),
        wallets={str(k): int(v) for k, v in wallets.items()},
        steps=steps,
    )


def _is_error_name(name: str) -> bool:
    cls = getattr(exceptions, str(name), None)
    return isinstance(cls, type) and issubclass(cls, SubsettleError)


class ScenarioRunner:
    """Runs a Scenario against a fresh service and in-memory rail."""

    def __init__(
        self,
        scenario: Scenario,
        config: Optional[LedgerConfig] = None,
        journal_path: Optional[Path] = None,
    ):
        self.scenario = scenario
        config = config or LedgerConfig.from_dict(scenario.config)
        if journal_path is not None:
            config = replace(config, journal_path=Path(journal_path))
        self.clock = ManualClock(start=scenario.start)
        self.rail = InMemoryTransferRail(scenario.wallets)
        self.service = BillingService.from_config(config, rail=self.rail, clock=self.clock)

    def run(self) -> ScenarioResult:
        """
        Execute every step in order.

        An unexpected SubsettleError is re-raised with the step index added.
        A step whose expected error does not occur raises ConfigError.
        """
        result = ScenarioResult(self.scenario, self.service)
        for step in self.scenario.steps:
            handler = _ACTIONS[step.action]
            try:
                value = handler(self, step.args or {})
            except SubsettleError as exc:
                if step.expect_error and type(exc).__name__ == step.expect_error:
                    logger.info(f"step {step.index} {step.action} raised expected {step.expect_error}")
                    result.steps.append(StepResult(step.index, step.action, error=type(exc).__name__))
                    continue
                exc.details.setdefault("step", step.index)
                raise
            except (KeyError, TypeError, ValueError) as exc:
                raise ConfigError(
                    f"bad arguments for {step.action}: {exc}",
                    {"step": step.index},
                ) from exc
            if step.expect_error:
                raise ConfigError(
                    "expected error did not occur",
                    {"step": step.index, "expect_error": step.expect_error},
                )
            result.steps.append(StepResult(step.index, step.action, result=value))
        return result

    # ── Actions ───────────────────────────────────────────────

    def _advance(self, args: Any) -> int:
        seconds = args["seconds"] if isinstance(args, dict) else args
        return self.clock.advance(int(seconds))

    def _register_provider(self, args: Dict[str, Any]) -> int:
        return self.service.register_provider(args["key"], args["fee"], args["caller"])

    def _register_subscriber(self, args: Dict[str, Any]) -> int:
        return self.service.register_subscriber(
            args["deposit"],
            args.get("plan", Plan.BASIC.value),
            args["providers"],
            args["caller"],
        )

    def _deposit(self, args: Dict[str, Any]) -> int:
        return self.service.deposit_for_subscription(args["subscriber"], args["amount"], args["caller"])

    def _pause(self, args: Dict[str, Any]) -> bool:
        return self.service.pause_subscription(args["subscriber"], args["caller"])

    def _withdraw(self, args: Dict[str, Any]) -> int:
        return self.service.withdraw_provider_earnings(args["provider"], args["caller"])

    def _set_active(self, args: Dict[str, Any]) -> List[int]:
        return self.service.set_providers_active(
            args["ids"],
            args["flags"],
            args.get("caller", self.service.config.system_owner),
        )

    def _update_fee(self, args: Dict[str, Any]) -> int:
        return self.service.update_provider_fee(args["provider"], args["fee"], args["caller"])

    def _remove_provider(self, args: Dict[str, Any]) -> int:
        return self.service.remove_provider(args["provider"], args["caller"])

    def _sweep(self, args: Dict[str, Any]) -> Dict[str, Any]:
        report = self.service.sweep()
        return {
            "counts": report.counts(),
            "charged": report.total_charged,
            "settled": report.settled_ids,
            "deactivated": report.deactivated_ids,
        }


_ACTIONS: Dict[str, Callable[[ScenarioRunner, Any], Any]] = {
    "advance":             ScenarioRunner._advance,
    "register_provider":   ScenarioRunner._register_provider,
    "register_subscriber": ScenarioRunner._register_subscriber,
    "deposit":             ScenarioRunner._deposit,
    "pause":               ScenarioRunner._pause,
    "withdraw":            ScenarioRunner._withdraw,
    "set_active":          ScenarioRunner._set_active,
    "update_fee":          ScenarioRunner._update_fee,
    "remove_provider":     ScenarioRunner._remove_provider,
    "sweep":               ScenarioRunner._sweep,
}
