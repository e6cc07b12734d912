"""
BankPro Banking Backend

Retail banking REST backend: users, transfers with a fee schedule,
cards, bills, recurring payments and per-user client data, stored in a
JSON document store with a hash-chained audit trail.
"""

__version__ = "1.0.0"
