"""
Settlement Engine and Sweep Scanner

The engine charges one subscriber for its unsettled epochs or deactivates
it. The scanner finds who is due and feeds ids to the engine.

Critical Invariants:
- Money is only moved between subscriber and provider balances
- A subscriber is never charged twice for the same epoch
- Underfunding never produces a negative balance or a partial debit
- Fees are read at settlement time, never retroactively
"""

from subsettle.settlement.engine import SettlementEngine
from subsettle.settlement.sweep import SweepScanner

__all__ = ["SettlementEngine", "SweepScanner"]
