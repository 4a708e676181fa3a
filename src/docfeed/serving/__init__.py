"""
Serving — FastAPI application for the query surface.

Exposes list-sources, search and document lookup over HTTP so an
assistant (or anything else) can consume the index.
"""
