"""
Ledger Recalc - Source Package

Daily ledger recalculation for a personal finance workspace: today's
transactions are netted into per-account deltas, applied to account
balances exactly once, written to a daily balance ledger, and reflected
in the monthly budget counter.

DESIGN PRINCIPLES:
1. Every transaction contributes at most once per field set
2. Fail early on the data source, fail soft on bookkeeping side effects
3. Typed records at the boundary, never raw store payloads
4. Every step is logged with the run's correlation id
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Ledger Recalc Team"
