"""
Services package - Ledger access and invoice reconstruction.

Includes the JSON-RPC client, record decoding, invoice discovery,
lifecycle reconstruction and the engine that ties them together.
"""

from .engine import FinancingOffer, InvoiceEngine
from .ledger import ChainReader, LedgerClient

__all__ = ["InvoiceEngine", "FinancingOffer", "ChainReader", "LedgerClient"]
