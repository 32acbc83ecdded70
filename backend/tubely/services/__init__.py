"""
Services module for the Tubely backend application.

This package contains the upload pipeline and its collaborators:

- upload_service: Pipeline controller for thumbnail and video uploads
- staging: Temporary files for uploads with guaranteed cleanup
- metadata_service: ffprobe frame geometry and aspect ratio classification
- optimizer_service: ffmpeg fast-start rewrite (stream copy)
- storage_service: S3-compatible uploads and presigned URLs
- local_assets: On-disk thumbnail storage behind the /assets mount
- video_repository: MongoDB record store for videos

Services are wired together through FastAPI's dependency system.
"""
