"""
Test Suite for the Envelope Ledger

Test Structure:
- fixtures/: Shared test data and utilities
- unit/: Unit tests mirroring src/ package structure
- integration/: CLI, configuration and concurrency workflows

Test Categories:
- Core utilities (money, currency, config, JSON)
- Ledger rules, validation and balance mutation
- Transaction lifecycle (soft delete, restore, clearing, edit, purge)
- Reconciliation and invariant checks

Test Data:
All budgets, envelopes and amounts are synthetic.
"""
