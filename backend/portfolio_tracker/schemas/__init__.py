# backend/portfolio_tracker/schemas/__init__.py
"""
Pydantic schemas for API request/response validation.

Internal service types (dataclasses) are mapped to these schemas in the
routers; services never import from here.
"""
