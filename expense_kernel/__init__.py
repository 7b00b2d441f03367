"""
Expense Kernel

A multi-stage expense approval workflow with:
- Per-category auto-approval and attachment policies
- A role-gated verification/approval state machine
- Append-only per-expense history and a system-wide audit log
- Optimistic concurrency on every expense mutation
"""

__version__ = "0.1.0"
