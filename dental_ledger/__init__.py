"""Billing and insurance ledger for a single dental clinic."""

__version__ = "0.1.0"
