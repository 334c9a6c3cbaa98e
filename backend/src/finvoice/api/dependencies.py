"""
FastAPI dependencies shared by the routers.

The engine is built once in the application lifespan and stored on
app.state; tests replace it with `app.dependency_overrides`.
"""

from fastapi import Request

from finvoice.services.engine import InvoiceEngine


def get_engine(request: Request) -> InvoiceEngine:
    """Return the engine created at startup."""
    return request.app.state.engine
