"""
Artifact Store

Filesystem-backed keyed storage for the intermediate artifacts of the
summary pipeline: one audio track, one transcript and one frame set per
video identifier. Final summaries are never stored.

Layout under the storage root:

    videos/<video_id>.mp4              source video (written by the downloader)
    audio/<video_id>.mp3               AudioTrack
    transcripts/<video_id>.txt         Transcript
    frames/<video_id>/frame_NNN.txt    FrameSet, one base64 file per ordinal
"""

import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Protocol, Union

from pipeline_errors import ArtifactNotFoundError
from video_ids import validate_video_id

logger = logging.getLogger(__name__)


class StageKind(Enum):
    """Kinds of cached stage artifacts."""

    AUDIO = "audio"
    FRAMES = "frames"
    TRANSCRIPT = "transcript"


@dataclass(frozen=True)
class AudioTrack:
    """Compressed mono audio payload extracted from a video."""

    data: bytes

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class EncodedFrame:
    """A sampled still frame, base64-encoded, tagged with its ordinal position."""

    ordinal: int
    data: str


@dataclass(frozen=True)
class FrameSet:
    """Ordered sequence of sampled frames. Ordinal order is chronological order."""

    frames: List[EncodedFrame] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.frames)


@dataclass(frozen=True)
class Transcript:
    """Plain-text transcript of a video's audio track."""

    text: str

    @property
    def word_count(self) -> int:
        return len(self.text.split())


StageArtifact = Union[AudioTrack, FrameSet, Transcript]

ARTIFACT_TYPES = {
    StageKind.AUDIO: AudioTrack,
    StageKind.FRAMES: FrameSet,
    StageKind.TRANSCRIPT: Transcript,
}


class ArtifactStore(Protocol):
    """Protocol for keyed stage artifact storage."""

    def exists(self, video_id: str, kind: StageKind) -> bool:
        """Check whether an artifact has been stored."""
        ...

    def read(self, video_id: str, kind: StageKind) -> StageArtifact:
        """Read a stored artifact, raising ArtifactNotFoundError if absent."""
        ...

    def write(self, video_id: str, kind: StageKind, artifact: StageArtifact) -> None:
        """Store an artifact, replacing any previous version."""
        ...

    def write_frame(self, video_id: str, frame: EncodedFrame) -> None:
        """Store one item of a frame set."""
        ...

    def location(self, video_id: str, kind: StageKind) -> str:
        """Get the storage location of an artifact relative to the store root."""
        ...


def check_artifact_type(kind: StageKind, artifact: StageArtifact) -> None:
    """Reject an artifact that does not match its stage kind."""
    expected_type = ARTIFACT_TYPES[kind]
    if not isinstance(artifact, expected_type):
        raise TypeError(
            f"{kind.value} artifact must be {expected_type.__name__}, "
            f"got {type(artifact).__name__}"
        )


class FileSystemArtifactStore:
    """
    Artifact store rooted at a directory.

    Every file is written to a temporary sibling and moved into place with
    os.replace, so readers see either the old or the new bytes. There is no
    locking: concurrent writers of the same artifact race and the last one wins.

    A frame set counts as present when at least one frame file exists in its
    directory. A partially sampled set is therefore treated as complete.
    """

    AUDIO_DIRECTORY = "audio"
    FRAMES_DIRECTORY = "frames"
    TRANSCRIPTS_DIRECTORY = "transcripts"
    FRAME_FILE_PATTERN = re.compile(r"^frame_(\d+)\.txt$")

    def __init__(self, root_directory: Union[str, Path]):
        """
        Initialize the store.

        Args:
            root_directory: Directory under which all artifacts are kept
        """
        self.root_directory = Path(root_directory)
        logger.debug(f"FileSystemArtifactStore initialized at: {self.root_directory}")

    def _relative_path(self, video_id: str, kind: StageKind) -> str:
        validate_video_id(video_id)

        if kind == StageKind.AUDIO:
            return f"{self.AUDIO_DIRECTORY}/{video_id}.mp3"
        if kind == StageKind.TRANSCRIPT:
            return f"{self.TRANSCRIPTS_DIRECTORY}/{video_id}.txt"
        return f"{self.FRAMES_DIRECTORY}/{video_id}"

    def path_for(self, video_id: str, kind: StageKind) -> Path:
        """Get the absolute path of an artifact file (or frame-set directory)."""
        return self.root_directory / self._relative_path(video_id, kind)

    def location(self, video_id: str, kind: StageKind) -> str:
        return "/" + self._relative_path(video_id, kind)

    @staticmethod
    def frame_file_name(ordinal: int) -> str:
        """Get the file name of a frame, keyed by zero-padded ordinal."""
        return f"frame_{ordinal:03d}.txt"

    def _frame_files(self, frames_directory: Path) -> List[Path]:
        if not frames_directory.is_dir():
            return []

        frame_files = [
            frame_path
            for frame_path in frames_directory.iterdir()
            if frame_path.is_file() and self.FRAME_FILE_PATTERN.match(frame_path.name)
        ]
        return sorted(frame_files, key=lambda frame_path: frame_path.name)

    def exists(self, video_id: str, kind: StageKind) -> bool:
        artifact_path = self.path_for(video_id, kind)

        if kind == StageKind.FRAMES:
            return bool(self._frame_files(artifact_path))

        return artifact_path.is_file()

    def read(self, video_id: str, kind: StageKind) -> StageArtifact:
        if not self.exists(video_id, kind):
            raise ArtifactNotFoundError(f"No cached {kind.value} for video {video_id}")

        artifact_path = self.path_for(video_id, kind)

        if kind == StageKind.AUDIO:
            return AudioTrack(data=artifact_path.read_bytes())

        if kind == StageKind.TRANSCRIPT:
            return Transcript(text=artifact_path.read_text(encoding="utf-8"))

        frames = []
        for frame_path in self._frame_files(artifact_path):
            ordinal = int(self.FRAME_FILE_PATTERN.match(frame_path.name).group(1))
            frames.append(
                EncodedFrame(ordinal=ordinal, data=frame_path.read_text(encoding="utf-8"))
            )
        return FrameSet(frames=frames)

    def write(self, video_id: str, kind: StageKind, artifact: StageArtifact) -> None:
        check_artifact_type(kind, artifact)
        artifact_path = self.path_for(video_id, kind)

        if kind == StageKind.AUDIO:
            self._atomic_write(artifact_path, artifact.data)
        elif kind == StageKind.TRANSCRIPT:
            self._atomic_write(artifact_path, artifact.text.encode("utf-8"))
        else:
            # Full replace: drop frames from any previous pass first
            for stale_frame_path in self._frame_files(artifact_path):
                stale_frame_path.unlink()
            for frame in artifact.frames:
                self.write_frame(video_id, frame)

        logger.debug(f"Stored {kind.value} artifact for {video_id}: {artifact_path}")

    def write_frame(self, video_id: str, frame: EncodedFrame) -> None:
        frames_directory = self.path_for(video_id, StageKind.FRAMES)
        frame_path = frames_directory / self.frame_file_name(frame.ordinal)
        self._atomic_write(frame_path, frame.data.encode("ascii"))

    @staticmethod
    def _atomic_write(target_path: Path, payload: bytes) -> None:
        target_path.parent.mkdir(parents=True, exist_ok=True)

        file_descriptor, temporary_path = tempfile.mkstemp(
            dir=str(target_path.parent), prefix=f".{target_path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(file_descriptor, "wb") as temporary_file:
                temporary_file.write(payload)
            os.replace(temporary_path, target_path)
        except Exception:
            if os.path.exists(temporary_path):
                os.unlink(temporary_path)
            raise


class VideoLibrary:
    """Read-only view of the source videos placed under the storage root."""

    VIDEOS_DIRECTORY = "videos"
    VIDEO_EXTENSION = ".mp4"

    def __init__(self, root_directory: Union[str, Path]):
        self.root_directory = Path(root_directory)

    def path_for(self, video_id: str) -> Path:
        validate_video_id(video_id)
        return self.root_directory / self.VIDEOS_DIRECTORY / f"{video_id}{self.VIDEO_EXTENSION}"

    def exists(self, video_id: str) -> bool:
        return self.path_for(video_id).is_file()

    def location(self, video_id: str) -> Optional[str]:
        if not self.exists(video_id):
            return None
        return f"/{self.VIDEOS_DIRECTORY}/{video_id}{self.VIDEO_EXTENSION}"
