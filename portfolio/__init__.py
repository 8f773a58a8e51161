"""
Backend package for the portfolio site.

This package provides a FastAPI application serving the public portfolio,
the contact form and the hidden admin panel, with database and image storage
abstractions so the same code runs against in-memory backends in development
and Postgres plus an S3-compatible bucket in production.
"""
