"""
Video Metadata Service for Tubely

This service extracts the frame geometry of a staged video by running ffprobe and
classifies the result into an AspectClass. The aspect class becomes the storage
key prefix for the uploaded video (``landscape/``, ``portrait/`` or ``other/``).

The upload pipeline depends only on the narrow ``VideoProber`` protocol, so tests
can substitute a fake that returns fixed dimensions without an ffprobe binary.
"""

import json
import logging

from pathlib import Path
from typing import Any, Protocol

from tubely.models.video import AspectClass, Dimensions
from tubely.utils.process import CommandError, run_command


# Ratios are matched within this absolute tolerance
ASPECT_RATIO_TOLERANCE = 0.01

LANDSCAPE_RATIO = 16 / 9
PORTRAIT_RATIO = 9 / 16


class ProbeError(Exception):
    """Raised when a file's video stream geometry cannot be determined."""


class VideoProber(Protocol):
    """Anything that can report the dimensions of a staged video."""

    async def probe(self, file_path: Path) -> Dimensions: ...


def classify_aspect_ratio(width: int, height: int) -> AspectClass:
    """
    Classify frame dimensions as landscape (16:9), portrait (9:16) or other.

    Args:
        width: Frame width in pixels (must be positive)
        height: Frame height in pixels (must be positive)

    Returns:
        AspectClass: LANDSCAPE when width/height is within 0.01 of 16/9,
        PORTRAIT when within 0.01 of 9/16, OTHER otherwise.

    Raises:
        ValueError: If either dimension is not positive.

    Example:
        >>> classify_aspect_ratio(1920, 1080)
        <AspectClass.LANDSCAPE: 'landscape'>
        >>> classify_aspect_ratio(1000, 1000)
        <AspectClass.OTHER: 'other'>
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Dimensions must be positive, got {width}x{height}")

    ratio = width / height
    if abs(ratio - LANDSCAPE_RATIO) < ASPECT_RATIO_TOLERANCE:
        return AspectClass.LANDSCAPE
    if abs(ratio - PORTRAIT_RATIO) < ASPECT_RATIO_TOLERANCE:
        return AspectClass.PORTRAIT
    return AspectClass.OTHER


class MetadataService:
    """
    ffprobe-backed video metadata extraction.

    Runs ``ffprobe -v error -print_format json -show_streams -select_streams v:0``
    against a staged file and reads the width and height of the first video
    stream from the JSON output.

    Attributes:
        ffprobe_path: ffprobe executable to run
        timeout: Maximum seconds a single probe may take
        logger: Logger instance for tracking operations and errors

    Example:
        service = MetadataService(ffprobe_path="ffprobe", timeout=30)
        dimensions = await service.probe(Path("/tmp/tubely-upload-x.mp4"))
        aspect = classify_aspect_ratio(dimensions.width, dimensions.height)
    """

    def __init__(self, ffprobe_path: str = "ffprobe", timeout: float = 30.0) -> None:
        """
        Initialize the MetadataService.

        Args:
            ffprobe_path: ffprobe executable name or absolute path
            timeout: Seconds before a hung ffprobe process is killed
        """
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    def build_command(self, file_path: Path) -> list[str]:
        return [
            self.ffprobe_path,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_streams",
            "-select_streams",
            "v:0",
            str(file_path),
        ]

    async def probe(self, file_path: Path) -> Dimensions:
        """
        Return the dimensions of the first video stream in a file.

        Args:
            file_path: Path to the staged video

        Returns:
            Dimensions: Width and height of the primary video stream.

        Raises:
            ProbeError: If the file is missing, ffprobe fails, times out or
                produces unparseable output, or no stream with positive
                dimensions is found.
        """
        path = Path(file_path)
        if not path.is_file():
            self.logger.error("Video file not found for probing: %s", path)
            raise ProbeError(f"Video file not found: {path}")

        try:
            result = await run_command(self.build_command(path), timeout=self.timeout)
        except CommandError as e:
            self.logger.error("ffprobe could not run on %s: %s", path, e)
            raise ProbeError(str(e)) from e

        if not result.ok:
            self.logger.error(
                "ffprobe exited with status %d for %s: %s",
                result.returncode,
                path,
                result.stderr_text(),
            )
            raise ProbeError(f"ffprobe exited with status {result.returncode}")

        dimensions = self.parse_dimensions(result.stdout)
        self.logger.info(
            "Probed %s: %dx%d", path.name, dimensions.width, dimensions.height
        )
        return dimensions

    def parse_dimensions(self, output: bytes) -> Dimensions:
        """
        Parse ffprobe's JSON stream listing into Dimensions.

        Raises:
            ProbeError: If the output is not JSON, lists no streams, or the first
                stream lacks positive integer width and height.
        """
        try:
            payload: dict[str, Any] = json.loads(output)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProbeError(f"Unparseable ffprobe output: {e}") from e

        streams = payload.get("streams") if isinstance(payload, dict) else None
        if not streams:
            raise ProbeError("No video streams found")

        stream = streams[0]
        width = stream.get("width")
        height = stream.get("height")
        if not isinstance(width, int) or not isinstance(height, int) or width <= 0 or height <= 0:
            raise ProbeError(f"First stream has no usable dimensions: {width}x{height}")

        return Dimensions(width=width, height=height)
