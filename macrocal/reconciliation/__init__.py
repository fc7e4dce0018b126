"""Reconciliation of candidate indicators and releases against the store."""
