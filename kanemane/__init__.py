"""
Kanemane - Source Package

A personal and family finance ledger. Money lives in named assets
(bank accounts, e-money wallets, cash) and every income or expense
moves an asset's running balance. Entries come from the dashboard or
from a WhatsApp bot that reads free text and receipt photos.

DESIGN PRINCIPLES:
1. AI suggests → Human confirms → Ledger commits
2. A balance never changes without a transaction explaining it
3. Ledger mutations are all-or-nothing
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Kanemane Team"
