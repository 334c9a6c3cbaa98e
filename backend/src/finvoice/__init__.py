"""
finvoice - read-side engine for on-chain invoice financing.

Discovers invoices from contract events, reconstructs their lifecycle,
and computes financing quotes and portfolio analytics.
"""

__version__ = "0.1.0"
