"""Shared test data for ledger tests."""
