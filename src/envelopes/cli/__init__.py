"""
Command Line Interface Package

Command-line access to the envelope ledger.

Command Structure:
- envelopes: Main entry point with utility commands (version, config, init-db)
- envelopes budget / envelope / payee / income-source: Create and inspect entities
- envelopes tx: Apply, delete, restore, clear and list transactions
- envelopes reconcile: Replay a budget and report (or repair) drift
- envelopes purge: Remove old soft-deleted transactions
"""
