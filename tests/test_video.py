import logging
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import video_mosaic.video as video_module  # noqa: E402
from video_mosaic.errors import EncodingError, FrameSourceError  # noqa: E402
from video_mosaic.video import FrameExtractor, VideoEncoder  # noqa: E402

LOGGER = logging.getLogger("video-test")


def frames_dir_from(cmd):
    return Path(cmd[-1]).parent


class FakeExtractionProcess:
    """Writes one frame per poll, then exits with ``exit_code``."""

    def __init__(self, cmd, frame_total=3, exit_code=0, stderr=None, **kwargs):
        self.frames_dir = frames_dir_from(cmd)
        self.frame_total = frame_total
        self.exit_code = exit_code
        self.stderr = stderr
        self.written = 0
        self.returncode = None
        self.terminated = False
        if exit_code != 0 and stderr is not None:
            stderr.write(b"Invalid data found when processing input")

    def _write_next(self):
        self.written += 1
        (self.frames_dir / f"frame_{self.written:06d}.png").write_bytes(b"png")

    def poll(self):
        if self.returncode is not None:
            return self.returncode
        if self.written < self.frame_total:
            self._write_next()
            return None
        self.returncode = self.exit_code
        return self.returncode

    def terminate(self):
        self.terminated = True
        self.returncode = -15

    def wait(self, timeout=None):
        return self.returncode

    def kill(self):
        self.returncode = -9


def make_extractor():
    return FrameExtractor(LOGGER, fps=30, poll_interval=0)


def test_extractor_streams_frames_in_order(tmp_path):
    video = tmp_path / "input.mov"
    video.write_bytes(b"video")
    frames_dir = tmp_path / "frames"

    with patch.object(video_module.shutil, "which", return_value="/usr/bin/ffmpeg"):
        with patch.object(
            video_module.subprocess,
            "Popen",
            side_effect=lambda cmd, **kw: FakeExtractionProcess(cmd, frame_total=4, **kw),
        ):
            frames = list(make_extractor().stream(video, frames_dir))

    assert [frame.name for frame in frames] == [
        "frame_000001.png",
        "frame_000002.png",
        "frame_000003.png",
        "frame_000004.png",
    ]


def test_extractor_command_uses_fps_and_numbered_pattern(tmp_path):
    cmd = FrameExtractor(LOGGER, fps=24).build_command(tmp_path / "in.mp4", tmp_path / "frames")

    assert "fps=24" in cmd
    assert cmd[-1] == str(tmp_path / "frames" / "frame_%06d.png")


def test_extractor_reports_ffmpeg_failure(tmp_path):
    video = tmp_path / "input.mov"
    video.write_bytes(b"not really a video")

    with patch.object(video_module.shutil, "which", return_value="/usr/bin/ffmpeg"):
        with patch.object(
            video_module.subprocess,
            "Popen",
            side_effect=lambda cmd, **kw: FakeExtractionProcess(cmd, frame_total=0, exit_code=1, **kw),
        ):
            with pytest.raises(FrameSourceError) as excinfo:
                list(make_extractor().stream(video, tmp_path / "frames"))

    assert "Invalid data" in str(excinfo.value)


def test_extractor_terminates_ffmpeg_when_consumer_stops(tmp_path):
    video = tmp_path / "input.mov"
    video.write_bytes(b"video")
    processes = []

    def factory(cmd, **kwargs):
        process = FakeExtractionProcess(cmd, frame_total=100, **kwargs)
        processes.append(process)
        return process

    with patch.object(video_module.shutil, "which", return_value="/usr/bin/ffmpeg"):
        with patch.object(video_module.subprocess, "Popen", side_effect=factory):
            stream = make_extractor().stream(video, tmp_path / "frames")
            first = next(stream)
            stream.close()

    assert first.name == "frame_000001.png"
    assert processes[0].terminated


def test_extractor_requires_ffmpeg_and_source(tmp_path):
    with patch.object(video_module.shutil, "which", return_value=None):
        with pytest.raises(FrameSourceError):
            list(make_extractor().stream(tmp_path / "input.mov", tmp_path / "frames"))

    with patch.object(video_module.shutil, "which", return_value="/usr/bin/ffmpeg"):
        with pytest.raises(FrameSourceError):
            list(make_extractor().stream(tmp_path / "missing.mov", tmp_path / "frames"))


class FakeStdin:
    def __init__(self):
        self.chunks = []
        self.closed = False

    def write(self, data):
        self.chunks.append(data)
        return len(data)

    def close(self):
        self.closed = True


class FakeEncodeProcess:
    def __init__(self, cmd, exit_code=0, **kwargs):
        self.cmd = cmd
        self.exit_code = exit_code
        self.stdin = FakeStdin()
        self.stderr = kwargs.get("stderr")

    def wait(self, timeout=None):
        if self.exit_code == 0:
            Path(self.cmd[-1]).write_bytes(b"".join(self.stdin.chunks))
        elif self.stderr is not None:
            self.stderr.write(b"Unknown encoder 'libx264'")
        return self.exit_code


def write_frames(directory: Path, count: int):
    directory.mkdir(parents=True, exist_ok=True)
    paths = []
    for index in range(count):
        path = directory / f"frame_{index + 1:06d}.png"
        path.write_bytes(f"frame-{index}|".encode())
        paths.append(path)
    return paths


def test_encoder_pipes_frames_in_order(tmp_path):
    frames = write_frames(tmp_path / "frames-out", 3)
    output = tmp_path / "video-out" / "mosaic.mp4"
    processes = []

    def factory(cmd, **kwargs):
        process = FakeEncodeProcess(cmd, **kwargs)
        processes.append(process)
        return process

    with patch.object(video_module.shutil, "which", return_value="/usr/bin/ffmpeg"):
        with patch.object(video_module.subprocess, "Popen", side_effect=factory):
            result = VideoEncoder(LOGGER, fps=30, quality=18).encode(frames, output)

    assert result == output
    assert output.read_bytes() == b"frame-0|frame-1|frame-2|"
    assert processes[0].stdin.closed
    cmd = processes[0].cmd
    assert cmd[cmd.index("-c:v") + 1] == "libx264"
    assert cmd[cmd.index("-crf") + 1] == "18"
    assert cmd[cmd.index("-pix_fmt") + 1] == "yuv420p"
    assert list(output.parent.glob(".tmp_*")) == []


def test_encoder_failure_raises_and_cleans_temp_output(tmp_path):
    frames = write_frames(tmp_path / "frames-out", 2)
    output = tmp_path / "video-out" / "mosaic.mp4"

    with patch.object(video_module.shutil, "which", return_value="/usr/bin/ffmpeg"):
        with patch.object(
            video_module.subprocess,
            "Popen",
            side_effect=lambda cmd, **kw: FakeEncodeProcess(cmd, exit_code=1, **kw),
        ):
            with pytest.raises(EncodingError) as excinfo:
                VideoEncoder(LOGGER).encode(frames, output)

    assert "libx264" in str(excinfo.value)
    assert not output.exists()
    assert list(output.parent.glob(".tmp_*")) == []


def test_encoder_rejects_empty_input_and_missing_ffmpeg(tmp_path):
    with pytest.raises(EncodingError):
        VideoEncoder(LOGGER).encode([], tmp_path / "out.mp4")

    frames = write_frames(tmp_path / "frames-out", 1)
    with patch.object(video_module.shutil, "which", return_value=None):
        with pytest.raises(EncodingError):
            VideoEncoder(LOGGER).encode(frames, tmp_path / "out.mp4")
