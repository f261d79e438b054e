"""LedgerCheck HTTP engine."""
