"""
Media Processing Module

Audio extraction and frame sampling for the video summary pipeline.

The pipeline never spawns processes itself. It talks to a MediaProbe and a
MediaExtractor; FFmpegMediaTool implements both with ffprobe/ffmpeg
subprocesses, and tests substitute a deterministic fake.
"""

import base64
import logging
import math
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Protocol

from artifact_store import AudioTrack, EncodedFrame, FrameSet
from pipeline_errors import ExtractionError

logger = logging.getLogger(__name__)

# Frame budget per video and target spacing between sampled frames
MAX_FRAMES = 20
SECONDS_PER_FRAME = 10

# 32 kbit/s mono keeps an hour of speech around 14MB
AUDIO_BITRATE = "32k"
AUDIO_CHANNELS = 1

JPEG_QUALITY = 2


class MediaToolError(Exception):
    """Raised when an external media tool exits non-zero or cannot be run."""


class MediaProbe(Protocol):
    """Protocol for reading media properties."""

    def probe_duration(self, video_path: str) -> float:
        """Get the duration of a video in seconds."""
        ...


class MediaExtractor(Protocol):
    """Protocol for media extraction operations."""

    def extract_audio(
        self, video_path: str, output_path: str, bitrate: str, channels: int
    ) -> None:
        """Transcode the audio track of a video into an MP3 file."""
        ...

    def extract_frame(self, video_path: str, timestamp: float, output_path: str) -> None:
        """Write the still frame at a timestamp to a JPEG file."""
        ...


class FFmpegMediaTool:
    """
    MediaProbe and MediaExtractor backed by ffprobe/ffmpeg subprocesses.

    Calls block until the tool exits. No timeout is applied.
    """

    def __init__(self, ffmpeg_binary: str = "ffmpeg", ffprobe_binary: str = "ffprobe"):
        self.ffmpeg_binary = ffmpeg_binary
        self.ffprobe_binary = ffprobe_binary

    def _run(self, command: List[str]) -> subprocess.CompletedProcess:
        logger.debug(f"Running media tool: {' '.join(command)}")
        try:
            return subprocess.run(command, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as tool_error:
            stderr_output = (tool_error.stderr or "").strip()
            raise MediaToolError(
                f"{command[0]} exited with status {tool_error.returncode}: {stderr_output[-500:]}"
            ) from tool_error
        except FileNotFoundError as missing_tool_error:
            raise MediaToolError(f"{command[0]} is not installed") from missing_tool_error

    def probe_duration(self, video_path: str) -> float:
        ffprobe_command = [
            self.ffprobe_binary,
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            video_path,
        ]
        result = self._run(ffprobe_command)

        try:
            return float(result.stdout.strip())
        except ValueError as parse_error:
            raise MediaToolError(
                f"Could not parse duration from ffprobe output: {result.stdout!r}"
            ) from parse_error

    def extract_audio(
        self, video_path: str, output_path: str, bitrate: str, channels: int
    ) -> None:
        ffmpeg_command = [
            self.ffmpeg_binary,
            "-i",
            video_path,
            "-vn",  # Drop the video stream
            "-acodec",
            "libmp3lame",
            "-b:a",
            bitrate,
            "-ac",
            str(channels),
            "-y",
            output_path,
        ]
        self._run(ffmpeg_command)

    def extract_frame(self, video_path: str, timestamp: float, output_path: str) -> None:
        ffmpeg_command = [
            self.ffmpeg_binary,
            "-ss",
            f"{timestamp:.3f}",
            "-i",
            video_path,
            "-vframes",
            "1",
            "-q:v",
            str(JPEG_QUALITY),
            "-y",
            output_path,
        ]
        self._run(ffmpeg_command)


@dataclass(frozen=True)
class SamplingSchedule:
    """
    Evenly spaced frame timestamps over a video.

    frame_count = min(max_frames, ceil(duration / seconds_per_frame)). Each
    timestamp sits in the middle of its interval and is clamped to
    [0, duration - 1].

    The schedule is never persisted. Changing max_frames does not invalidate
    frame sets that are already cached.
    """

    duration: float
    max_frames: int = MAX_FRAMES
    seconds_per_frame: float = SECONDS_PER_FRAME

    @property
    def frame_count(self) -> int:
        if self.duration <= 0:
            return 0
        return min(self.max_frames, math.ceil(self.duration / self.seconds_per_frame))

    @property
    def interval(self) -> float:
        if self.frame_count == 0:
            return 0.0
        return self.duration / self.frame_count

    @property
    def timestamps(self) -> List[float]:
        interval = self.interval
        latest_timestamp = self.duration - 1
        return [
            max(0.0, min(interval * index + interval / 2, latest_timestamp))
            for index in range(self.frame_count)
        ]


class AudioExtractor:
    """
    Responsible for extracting a compressed mono audio track from a video.

    The bitrate is fixed rather than adapted to the duration, so very long
    videos can still exceed the transcription service's upload ceiling.
    """

    def __init__(
        self,
        media_extractor: MediaExtractor,
        bitrate: str = AUDIO_BITRATE,
        channels: int = AUDIO_CHANNELS,
        temp_directory: Optional[str] = None,
    ):
        self.media_extractor = media_extractor
        self.bitrate = bitrate
        self.channels = channels
        self.temp_directory = temp_directory

    def extract(self, video_path: str) -> AudioTrack:
        """
        Extract the audio track of a video.

        Args:
            video_path: Path to the source video

        Returns:
            AudioTrack holding the MP3 payload

        Raises:
            ExtractionError: If the tool fails or produces no output file
        """
        logger.info(f"Extracting audio: {video_path} ({self.bitrate}, {self.channels}ch)")

        with tempfile.TemporaryDirectory(dir=self.temp_directory) as working_directory:
            output_path = Path(working_directory) / f"{Path(video_path).stem}.mp3"

            try:
                self.media_extractor.extract_audio(
                    video_path, str(output_path), self.bitrate, self.channels
                )
            except MediaToolError as tool_error:
                logger.error(f"Audio extraction failed for {video_path}: {tool_error}")
                raise ExtractionError(f"Audio extraction failed: {tool_error}") from tool_error

            if not output_path.is_file():
                logger.error(f"Audio extraction produced no output for {video_path}")
                raise ExtractionError("Audio extraction completed but output file not found")

            audio_track = AudioTrack(data=output_path.read_bytes())

        logger.info(f"Audio extracted: {audio_track.size_bytes / (1024 * 1024):.2f}MB")
        return audio_track


class FrameSampler:
    """
    Responsible for sampling still frames across a video.

    A frame that cannot be extracted is skipped. The returned set may be
    shorter than the schedule and sampling never fails because of it.
    """

    def __init__(
        self,
        media_probe: MediaProbe,
        media_extractor: MediaExtractor,
        max_frames: int = MAX_FRAMES,
        seconds_per_frame: float = SECONDS_PER_FRAME,
        temp_directory: Optional[str] = None,
    ):
        self.media_probe = media_probe
        self.media_extractor = media_extractor
        self.max_frames = max_frames
        self.seconds_per_frame = seconds_per_frame
        self.temp_directory = temp_directory

    def schedule_for(self, video_path: str) -> SamplingSchedule:
        """
        Probe a video and compute its sampling schedule.

        Raises:
            ExtractionError: If the duration cannot be probed
        """
        try:
            duration = self.media_probe.probe_duration(video_path)
        except MediaToolError as probe_error:
            logger.error(f"Duration probe failed for {video_path}: {probe_error}")
            raise ExtractionError(f"Could not read video duration: {probe_error}") from probe_error

        return SamplingSchedule(
            duration=duration,
            max_frames=self.max_frames,
            seconds_per_frame=self.seconds_per_frame,
        )

    def sample(
        self,
        video_path: str,
        on_frame: Optional[Callable[[EncodedFrame], None]] = None,
    ) -> FrameSet:
        """
        Sample and encode frames in schedule order.

        Args:
            video_path: Path to the source video
            on_frame: Called with each frame as soon as it is encoded, so the
                caller can persist it before the next extraction starts

        Returns:
            FrameSet in ordinal order
        """
        schedule = self.schedule_for(video_path)
        logger.info(
            f"Sampling {schedule.frame_count} frames over {schedule.duration:.1f}s: {video_path}"
        )

        frames = []
        with tempfile.TemporaryDirectory(dir=self.temp_directory) as working_directory:
            for ordinal, timestamp in enumerate(schedule.timestamps):
                frame_path = Path(working_directory) / f"frame_{ordinal:03d}.jpg"

                try:
                    self.media_extractor.extract_frame(video_path, timestamp, str(frame_path))
                except MediaToolError as tool_error:
                    logger.warning(f"Skipping frame {ordinal} at {timestamp:.2f}s: {tool_error}")
                    continue

                if not frame_path.is_file():
                    logger.warning(f"Skipping frame {ordinal} at {timestamp:.2f}s: no output")
                    continue

                frame = EncodedFrame(
                    ordinal=ordinal,
                    data=base64.b64encode(frame_path.read_bytes()).decode("ascii"),
                )
                frame_path.unlink()

                if on_frame is not None:
                    on_frame(frame)
                frames.append(frame)

        if len(frames) < schedule.frame_count:
            logger.warning(
                f"Sampled {len(frames)} of {schedule.frame_count} scheduled frames: {video_path}"
            )

        return FrameSet(frames=frames)
