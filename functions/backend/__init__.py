"""
Backend package for the Kalk Bay Church site.

This package provides a FastAPI application over the events listing, the
sermon archive and admin sign-in, with store, storage and auth abstractions
so the same code runs against Firebase, a self-hosted database and S3, or
in-memory doubles.
"""
