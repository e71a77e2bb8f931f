"""
FastAPI dependencies for request processing.

Dependencies hand the process-wide, read-only services built at startup to
the endpoints that need them.
"""
