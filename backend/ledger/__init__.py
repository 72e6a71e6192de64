"""
Travel ledger back office.

Upload ledger spreadsheets, keep the parsed travel-data rows in a database and
serve them through a REST API fronted by a Valkey read-through cache.
"""

__version__ = "0.1.0"
