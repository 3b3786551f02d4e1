"""
savings_batch -- Daily contribution batch processing.

Runs each user's scheduled daily contributions under a caller-visible
resource budget.  Every asset is one item in its own SAVEPOINT, so one
item's failure never aborts its siblings; failures and skips come back
as data (reason codes), and the run result always reports how many
items succeeded.

Architecture:
    savings_batch/ is a top-level package on top of savings_kernel.
    Nothing in savings_kernel imports from savings_batch.  All state
    changes go through the kernel's SavingsLedger.
"""
