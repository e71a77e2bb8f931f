"""
Pydantic models for API request/response schemas.

These are kept apart from the pipeline types so the wire format the web
client depends on does not move when a contract revision changes.
"""
