"""
Tubely Backend Application Package

This package contains the Tubely FastAPI application for uploading, processing
and delivering user videos. The platform provides:

- Video records owned by authenticated users
- Thumbnail uploads stored on local disk and served under /assets
- Video uploads probed with ffprobe, rewritten for fast start with ffmpeg and
  stored in S3-compatible object storage
- Time-limited presigned URLs for stored videos, minted at read time

Package Structure:
- api/: REST API endpoints organized by version (v1)
- core/: Core infrastructure (database, auth)
- models/: Pydantic data models
- services/: Upload pipeline and its collaborators
- utils/: Logging, validation, key derivation and subprocess helpers
"""

__version__ = "1.0.0"
__app_name__ = "tubely"
