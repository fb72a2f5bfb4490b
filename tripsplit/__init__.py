"""
TripSplit - Source Package

A shared-expense travel ledger. Members log shared ("public") and
personal ("private") purchases in a foreign currency and a home
currency, and the ledger always answers "who owes whom how much".

DESIGN PRINCIPLES:
1. Allocations are validated before anything is committed
2. No silent corrections of user-entered shares
3. Balances are a pure function of transactions and members
4. The spreadsheet backend is swappable
5. Writes are dispatched, never assumed durable
"""

__version__ = "1.0.0"
__author__ = "TripSplit Team"
