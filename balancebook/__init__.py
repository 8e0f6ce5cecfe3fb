"""
balancebook - Source Package

Balance computation core for a personal bookkeeping system: current
balances, chronological running balances, and net worth, computed from a
snapshot of account and transaction records.

DESIGN PRINCIPLES:
1. The set of records is the source of truth
2. Every computation runs over one immutable snapshot
3. The engine never fails on bad data; validation happens at ingestion
4. Every store mutation is auditable
"""

__version__ = "1.0.0"
