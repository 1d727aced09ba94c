"""
Stock ledger.

Models:
- StockLedgerEntry (append-only record of one change to Product.stock)

Operations (db.inventory.mutations):
- initial stock, sale, return, manual adjustment (restock/reduce/set)
- order-level sale and cancellation reversal
"""
