"""
FastAPI application layer for the vegscan label pipeline.

This module exposes the scan pipeline over HTTP so the web client can upload
a photo of an ingredient label and get back the OCR text and the verdict.
"""
