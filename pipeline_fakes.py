"""
Deterministic stand-ins for the external collaborators of the summary pipeline.

Used by the test suites in place of ffmpeg, the OpenAI API and the
filesystem store.
"""

import base64
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

from artifact_store import (
    AudioTrack,
    EncodedFrame,
    FrameSet,
    StageArtifact,
    StageKind,
    check_artifact_type,
)
from media_processor import MediaToolError
from openai_services import (
    MessageContent,
    OpenAIServiceError,
    SummaryServices,
    build_summary_services,
)
from pipeline_errors import ArtifactNotFoundError

FAKE_AUDIO_PAYLOAD = b"ID3\x04\x00fake-mp3-payload"


def fake_jpeg_payload(timestamp: float) -> bytes:
    return f"\xff\xd8jpeg@{timestamp:.2f}".encode("latin-1")


class FakeMediaTool:
    """
    Scripted MediaProbe/MediaExtractor.

    Writes small placeholder files instead of running ffmpeg and records every
    call so tests can assert on what was invoked.
    """

    def __init__(
        self,
        duration: float = 95.0,
        fail_probe: bool = False,
        fail_audio: bool = False,
        audio_produces_file: bool = True,
        missing_frame_calls: Optional[Set[int]] = None,
        failing_frame_calls: Optional[Set[int]] = None,
    ):
        self.duration = duration
        self.fail_probe = fail_probe
        self.fail_audio = fail_audio
        self.audio_produces_file = audio_produces_file
        self.missing_frame_calls = missing_frame_calls or set()
        self.failing_frame_calls = failing_frame_calls or set()
        self.calls: List[Tuple[str, Any]] = []

    def calls_to(self, operation: str) -> List[Any]:
        return [arguments for name, arguments in self.calls if name == operation]

    def probe_duration(self, video_path: str) -> float:
        self.calls.append(("probe_duration", video_path))
        if self.fail_probe:
            raise MediaToolError("ffprobe exited with status 1: invalid data")
        return self.duration

    def extract_audio(
        self, video_path: str, output_path: str, bitrate: str, channels: int
    ) -> None:
        self.calls.append(("extract_audio", (video_path, bitrate, channels)))
        if self.fail_audio:
            raise MediaToolError("ffmpeg exited with status 1: no audio stream")
        if self.audio_produces_file:
            Path(output_path).write_bytes(FAKE_AUDIO_PAYLOAD)

    def extract_frame(self, video_path: str, timestamp: float, output_path: str) -> None:
        call_index = len(self.calls_to("extract_frame"))
        self.calls.append(("extract_frame", timestamp))
        if call_index in self.failing_frame_calls:
            raise MediaToolError("ffmpeg exited with status 1: seek failed")
        if call_index not in self.missing_frame_calls:
            Path(output_path).write_bytes(fake_jpeg_payload(timestamp))


class FakeCompletionClient:
    """
    Scripted CompletionClient.

    Answers each kind of request with a fixed string and can be told to fail
    individual stages ("transcription", "visual", "audio", "consolidation").
    """

    def __init__(
        self,
        transcript_text: str = "Welcome to the demo. Today we build a bookshelf.",
        failing_stages: Optional[Set[str]] = None,
    ):
        self.transcript_text = transcript_text
        self.failing_stages = failing_stages or set()
        self.transcription_calls: List[bytes] = []
        self.chat_calls: List[Dict[str, Any]] = []

    @staticmethod
    def stage_of(content: MessageContent) -> str:
        if isinstance(content, list):
            return "visual"
        if "## Visual Analysis:" in content:
            return "consolidation"
        return "audio"

    def calls_for(self, stage: str) -> List[Dict[str, Any]]:
        return [call for call in self.chat_calls if call["stage"] == stage]

    async def chat_completion(self, content: MessageContent, max_tokens: int) -> str:
        stage = self.stage_of(content)
        self.chat_calls.append({"stage": stage, "content": content, "max_tokens": max_tokens})
        if stage in self.failing_stages:
            raise OpenAIServiceError(f"OpenAI API error 500: {stage} unavailable", status=500)
        return f"{stage} summary"

    async def transcribe_audio(self, audio_data: bytes, file_name: str) -> str:
        self.transcription_calls.append(audio_data)
        if "transcription" in self.failing_stages:
            raise OpenAIServiceError("OpenAI API error 503: transcription unavailable", status=503)
        return self.transcript_text


class FakeServiceFactory:
    """Service factory that wires every component to one fake client."""

    def __init__(self, client: Optional[FakeCompletionClient] = None):
        self.client = client or FakeCompletionClient()
        self.api_keys: List[str] = []

    def __call__(self, api_key: str) -> SummaryServices:
        self.api_keys.append(api_key)
        return build_summary_services(self.client)


class StaticCredentialProvider:
    """In-memory credential record."""

    def __init__(self, api_key: Optional[str] = "sk-test-0000000000"):
        self.api_key = api_key

    def get(self) -> Optional[str]:
        return self.api_key

    def set(self, api_key: str) -> None:
        self.api_key = api_key

    def clear(self) -> None:
        self.api_key = None


class InMemoryArtifactStore:
    """Artifact store held in dictionaries, with the same presence rules as the filesystem store."""

    def __init__(self):
        self.artifacts: Dict[Tuple[str, StageKind], StageArtifact] = {}
        self.frames: Dict[str, Dict[int, EncodedFrame]] = {}
        self.writes: List[Tuple[str, StageKind]] = []

    def exists(self, video_id: str, kind: StageKind) -> bool:
        if kind == StageKind.FRAMES:
            return bool(self.frames.get(video_id))
        return (video_id, kind) in self.artifacts

    def read(self, video_id: str, kind: StageKind) -> StageArtifact:
        if not self.exists(video_id, kind):
            raise ArtifactNotFoundError(f"No cached {kind.value} for video {video_id}")
        if kind == StageKind.FRAMES:
            stored_frames = self.frames[video_id]
            return FrameSet(frames=[stored_frames[ordinal] for ordinal in sorted(stored_frames)])
        return self.artifacts[(video_id, kind)]

    def write(self, video_id: str, kind: StageKind, artifact: StageArtifact) -> None:
        check_artifact_type(kind, artifact)
        self.writes.append((video_id, kind))
        if kind == StageKind.FRAMES:
            self.frames[video_id] = {frame.ordinal: frame for frame in artifact.frames}
        else:
            self.artifacts[(video_id, kind)] = artifact

    def write_frame(self, video_id: str, frame: EncodedFrame) -> None:
        self.writes.append((video_id, StageKind.FRAMES))
        self.frames.setdefault(video_id, {})[frame.ordinal] = frame

    def location(self, video_id: str, kind: StageKind) -> str:
        return f"memory://{kind.value}/{video_id}"


def encoded_frames(count: int) -> FrameSet:
    """Build a frame set of placeholder frames."""
    return FrameSet(
        frames=[
            EncodedFrame(
                ordinal=ordinal,
                data=base64.b64encode(fake_jpeg_payload(ordinal)).decode("ascii"),
            )
            for ordinal in range(count)
        ]
    )


def fake_audio_track() -> AudioTrack:
    return AudioTrack(data=FAKE_AUDIO_PAYLOAD)
