"""
Fast-start stream optimization for Tubely.

Rewrites a staged video with ffmpeg so that its ``moov`` index sits at the front
of the file and playback can start before the download completes. Streams are
copied, never re-encoded, so the rewrite costs roughly one pass over the file.

The upload pipeline depends only on the ``StreamOptimizer`` protocol.
"""

import logging

from pathlib import Path
from typing import Protocol

from tubely.services.staging import remove_staged_file
from tubely.utils.process import CommandError, run_command


# Marker inserted between the input stem and its extension for the output file
PROCESSING_SUFFIX = ".processing"

# Container ffmpeg writes, whatever the input was, and how the result is labelled
OUTPUT_FORMAT = "mp4"
OUTPUT_MEDIA_TYPE = "video/mp4"


class OptimizeError(Exception):
    """Raised when the fast-start rewrite fails."""


class StreamOptimizer(Protocol):
    """Anything that can produce a fast-start copy of a staged video."""

    async def optimize(self, file_path: Path) -> Path: ...


def processing_path_for(file_path: Path) -> Path:
    """
    Output path for the rewrite: ``<stem>.processing<ext>`` beside the input.

    Example:
        >>> processing_path_for(Path("/tmp/tubely-upload-ab12.mp4"))
        PosixPath('/tmp/tubely-upload-ab12.processing.mp4')
    """
    return file_path.with_name(f"{file_path.stem}{PROCESSING_SUFFIX}{file_path.suffix or '.mp4'}")


class OptimizerService:
    """
    ffmpeg-backed fast-start rewriter.

    Runs ``ffmpeg -y -i <in> -c copy -movflags faststart -f mp4 <out>``. The
    caller owns the returned file and must remove it; on failure this service
    removes any partial output itself.

    Attributes:
        ffmpeg_path: ffmpeg executable to run
        timeout: Maximum seconds a single rewrite may take
    """

    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout: float = 600.0) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    def build_command(self, input_path: Path, output_path: Path) -> list[str]:
        return [
            self.ffmpeg_path,
            "-y",
            "-i",
            str(input_path),
            "-c",
            "copy",
            "-movflags",
            "faststart",
            "-f",
            OUTPUT_FORMAT,
            str(output_path),
        ]

    async def optimize(self, file_path: Path) -> Path:
        """
        Produce a fast-start copy of a staged video.

        Args:
            file_path: Path to the staged input video

        Returns:
            Path: The newly written ``.processing`` file.

        Raises:
            OptimizeError: If the input is missing, or ffmpeg fails, times out,
                or exits successfully without writing its output.
        """
        input_path = Path(file_path)
        if not input_path.is_file():
            self.logger.error("Video file not found for optimization: %s", input_path)
            raise OptimizeError(f"Video file not found: {input_path}")

        output_path = processing_path_for(input_path)
        self.logger.info("Starting fast-start rewrite of %s", input_path.name)

        try:
            result = await run_command(
                self.build_command(input_path, output_path), timeout=self.timeout
            )
        except CommandError as e:
            remove_staged_file(output_path)
            self.logger.error("ffmpeg could not run on %s: %s", input_path, e)
            raise OptimizeError(str(e)) from e
        except BaseException:
            remove_staged_file(output_path)
            raise

        if not result.ok:
            remove_staged_file(output_path)
            self.logger.error(
                "ffmpeg exited with status %d for %s: %s",
                result.returncode,
                input_path,
                result.stderr_text(),
            )
            raise OptimizeError(f"ffmpeg exited with status {result.returncode}")

        if not output_path.is_file():
            raise OptimizeError(f"ffmpeg produced no output for {input_path.name}")

        self.logger.info("Fast-start rewrite completed: %s", output_path.name)
        return output_path
