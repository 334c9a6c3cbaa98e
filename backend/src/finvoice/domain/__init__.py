"""
Domain package - Core business logic with no external dependencies.

This package contains pure Python domain models, the financing
calculator, lifecycle rules and analytics for on-chain invoice financing.
"""
