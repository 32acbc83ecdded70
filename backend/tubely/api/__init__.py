"""
Tubely API Package.

Endpoint implementations organized by version:
    - v1/: Version 1 API endpoints (current stable version)
        - videos.py: Video records and media uploads

All endpoints are served under a versioned URL prefix such as /api/v1.
"""
