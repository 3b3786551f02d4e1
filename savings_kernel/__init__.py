"""
Savings Kernel

An automatic-savings ledger that intercepts exchanges with:
- A two-phase prepare/settle protocol around each exchange
- Packed per-user configuration and per-call swap context
- All-or-nothing diversion commits (savings + treasury fee + shares)
- A price-gated deferred conversion (DCA) queue
- Owner-gated module registry with per-call authorization
"""

__version__ = "0.1.0"
