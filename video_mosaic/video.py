"""ffmpeg-backed frame extraction and video encoding."""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
import time
import uuid
from pathlib import Path
from typing import IO, Iterator, List, Sequence, Set, Union

from video_mosaic.errors import EncodingError, FrameSourceError
from video_mosaic.progress import ProgressReporter

PathLike = Union[str, Path]

FRAME_PREFIX = "frame_"
FRAME_PATTERN = f"{FRAME_PREFIX}%06d.png"
_STDERR_TAIL = 2000


def _read_tail(handle: IO[bytes]) -> str:
    handle.seek(0)
    return handle.read().decode("utf-8", errors="replace")[-_STDERR_TAIL:].strip()


def _require_ffmpeg(binary: str, error_cls: type) -> None:
    if shutil.which(binary) is None:
        raise error_cls(f"{binary} not found on PATH. Install ffmpeg with libx264 support.")


class FrameExtractor:
    """Extract numbered PNG frames from a video and stream them as they land.

    ffmpeg writes ``frame_000001.png``, ``frame_000002.png``... into the frame
    directory. A frame is handed out once a later frame exists or ffmpeg has
    exited, so consumers never see a half-written file.
    """

    def __init__(
        self,
        logger: logging.Logger,
        *,
        fps: int = 30,
        poll_interval: float = 0.25,
        ffmpeg_binary: str = "ffmpeg",
    ) -> None:
        self.logger = logger
        self.fps = fps
        self.poll_interval = poll_interval
        self.ffmpeg_binary = ffmpeg_binary

    def build_command(self, video_path: Path, frames_dir: Path) -> List[str]:
        return [
            self.ffmpeg_binary,
            "-y",
            "-loglevel",
            "error",
            "-i",
            str(video_path),
            "-vf",
            f"fps={self.fps}",
            str(frames_dir / FRAME_PATTERN),
        ]

    @staticmethod
    def _pending_frames(frames_dir: Path, emitted: Set[str], *, include_last: bool) -> List[Path]:
        frames = sorted(
            path
            for path in frames_dir.glob(f"{FRAME_PREFIX}*.png")
            if path.name not in emitted
        )
        if not include_last and frames:
            frames = frames[:-1]
        ready: List[Path] = []
        for path in frames:
            try:
                if path.stat().st_size > 0:
                    ready.append(path)
            except OSError:
                continue
        return ready

    def stream(self, video_path: PathLike, frames_dir: PathLike) -> Iterator[Path]:
        """Yield extracted frame paths in order while ffmpeg is still running."""
        source = Path(video_path)
        target_dir = Path(frames_dir)
        _require_ffmpeg(self.ffmpeg_binary, FrameSourceError)
        if not source.is_file():
            raise FrameSourceError(f"Source video not found: {source}")
        target_dir.mkdir(parents=True, exist_ok=True)

        cmd = self.build_command(source, target_dir)
        self.logger.info("Starting frame extraction at %s fps: %s", self.fps, " ".join(cmd))

        with tempfile.TemporaryFile() as stderr_log:
            try:
                process = subprocess.Popen(
                    cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=stderr_log,
                )
            except OSError as exc:
                raise FrameSourceError(f"Failed to start ffmpeg: {exc}") from exc

            emitted: Set[str] = set()
            try:
                while True:
                    finished = process.poll() is not None
                    if finished and process.returncode != 0:
                        raise FrameSourceError(
                            f"ffmpeg exited with code {process.returncode} while extracting "
                            f"{source.name}: {_read_tail(stderr_log)}"
                        )
                    for path in self._pending_frames(target_dir, emitted, include_last=finished):
                        emitted.add(path.name)
                        yield path
                    if finished:
                        break
                    time.sleep(self.poll_interval)
            finally:
                if process.poll() is None:
                    self.logger.warning("Stopping frame extraction before completion")
                    process.terminate()
                    try:
                        process.wait(timeout=5)
                    except subprocess.TimeoutExpired:
                        process.kill()
                        process.wait()

        self.logger.info("Frame extraction complete: %s frames", len(emitted))


class VideoEncoder:
    """Encode an ordered sequence of PNG frames into an H.264 video."""

    def __init__(
        self,
        logger: logging.Logger,
        *,
        fps: int = 30,
        quality: int = 18,
        ffmpeg_binary: str = "ffmpeg",
    ) -> None:
        self.logger = logger
        self.fps = fps
        self.quality = quality
        self.ffmpeg_binary = ffmpeg_binary

    def build_command(self, output_path: Path) -> List[str]:
        return [
            self.ffmpeg_binary,
            "-y",
            "-loglevel",
            "error",
            "-f",
            "image2pipe",
            "-vcodec",
            "png",
            "-r",
            str(self.fps),
            "-i",
            "-",
            # libx264 with yuv420p needs even dimensions.
            "-vf",
            "pad=ceil(iw/2)*2:ceil(ih/2)*2",
            "-c:v",
            "libx264",
            "-crf",
            str(self.quality),
            "-pix_fmt",
            "yuv420p",
            "-r",
            str(self.fps),
            "-movflags",
            "+faststart",
            str(output_path),
        ]

    def encode(self, frame_paths: Sequence[PathLike], output_path: PathLike) -> Path:
        frames = [Path(path) for path in frame_paths]
        if not frames:
            raise EncodingError("No processed frames available to encode")
        _require_ffmpeg(self.ffmpeg_binary, EncodingError)

        target = Path(output_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        temp_output = target.with_name(f".tmp_{uuid.uuid4().hex}_{target.name}")
        cmd = self.build_command(temp_output)
        self.logger.info("Encoding %s frames to %s", len(frames), target)

        progress = ProgressReporter(self.logger, "Encoding progress", total=len(frames))
        with tempfile.TemporaryFile() as stderr_log:
            try:
                process = subprocess.Popen(
                    cmd,
                    stdin=subprocess.PIPE,
                    stdout=subprocess.DEVNULL,
                    stderr=stderr_log,
                )
            except OSError as exc:
                raise EncodingError(f"Failed to start ffmpeg: {exc}") from exc

            assert process.stdin is not None
            pipe_error = None
            read_error = None
            try:
                for frame_path in frames:
                    try:
                        frame_bytes = frame_path.read_bytes()
                    except OSError as exc:
                        read_error = exc
                        break
                    try:
                        process.stdin.write(frame_bytes)
                    except OSError as exc:
                        pipe_error = exc
                        break
                    progress.advance()
            finally:
                try:
                    process.stdin.close()
                except OSError:
                    pass

            return_code = process.wait()
            failure = None
            if read_error is not None:
                failure = f"Failed to read processed frame: {read_error}"
            elif return_code != 0:
                failure = f"ffmpeg exited with code {return_code}: {_read_tail(stderr_log)}"
            elif pipe_error is not None:
                failure = f"ffmpeg closed its input early: {pipe_error}"

        if failure is not None:
            temp_output.unlink(missing_ok=True)
            raise EncodingError(failure)

        temp_output.replace(target)
        self.logger.info("Video creation completed: %s", target)
        return target


__all__ = ["FRAME_PATTERN", "FrameExtractor", "VideoEncoder"]
