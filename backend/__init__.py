"""
Backend package for the question bank API.

This package provides a FastAPI application with S3 image storage and a
MongoDB question store, plus in-memory stand-ins for local runs and tests.
"""
