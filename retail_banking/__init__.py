"""
Retail Banking Ledger

Checking, savings, student savings and credit accounts with time-weighted
monthly interest, an append-only transaction ledger, role-based access
control and a FastAPI front end.
"""

__version__ = "1.0.0"
