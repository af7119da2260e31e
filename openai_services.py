"""
OpenAI Service Adapters

Speech-to-text and completion calls used by the summary pipeline:
transcription of the extracted audio, a visual summary of sampled frames,
an audio summary of the transcript, and the consolidated overview.

Every call is a single request with no retry. Failures are raised as
TranscriptionError or SummarizationError so the pipeline can surface them.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

import aiohttp

import summary_prompts
from artifact_store import AudioTrack, EncodedFrame, Transcript
from pipeline_errors import SummarizationError, TranscriptionError

logger = logging.getLogger(__name__)


@dataclass
class OpenAIConfig:
    """Configuration for the OpenAI-backed services"""

    base_url: str = "https://api.openai.com/v1"
    chat_model: str = "gpt-4o"
    transcription_model: str = "whisper-1"

    # Generation ceilings per call
    visual_max_tokens: int = 1500
    audio_max_tokens: int = 1500
    consolidation_max_tokens: int = 2000

    # Only the leading frames are sent, regardless of how many were sampled
    max_vision_frames: int = 10
    image_detail: str = "low"

    # Upload limit of the transcription endpoint
    max_transcription_upload_bytes: int = 25 * 1024 * 1024

    # None means requests wait for as long as the service takes
    request_timeout_seconds: Optional[float] = None


def create_openai_config() -> OpenAIConfig:
    """Create OpenAI configuration from environment variables"""
    request_timeout = os.getenv("OPENAI_REQUEST_TIMEOUT")
    return OpenAIConfig(
        base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        chat_model=os.getenv("OPENAI_CHAT_MODEL", "gpt-4o"),
        transcription_model=os.getenv("OPENAI_TRANSCRIPTION_MODEL", "whisper-1"),
        visual_max_tokens=int(os.getenv("OPENAI_VISUAL_MAX_TOKENS", "1500")),
        audio_max_tokens=int(os.getenv("OPENAI_AUDIO_MAX_TOKENS", "1500")),
        consolidation_max_tokens=int(os.getenv("OPENAI_CONSOLIDATION_MAX_TOKENS", "2000")),
        image_detail=os.getenv("OPENAI_IMAGE_DETAIL", "low"),
        request_timeout_seconds=float(request_timeout) if request_timeout else None,
    )


class OpenAIServiceError(Exception):
    """Raised when the OpenAI API rejects a request or returns an unusable response."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


# Faults a service call can raise; adapters translate them for the pipeline
SERVICE_ERRORS = (OpenAIServiceError, aiohttp.ClientError, asyncio.TimeoutError)

MessageContent = Union[str, List[Dict[str, Any]]]


class CompletionClient(Protocol):
    """Protocol for the remote speech-to-text and completion endpoints."""

    async def chat_completion(self, content: MessageContent, max_tokens: int) -> str:
        """Send one user message and return the completion text."""
        ...

    async def transcribe_audio(self, audio_data: bytes, file_name: str) -> str:
        """Upload an audio file and return its transcript."""
        ...


class OpenAIClient:
    """Thin aiohttp client for the OpenAI REST API"""

    def __init__(self, api_key: str, config: Optional[OpenAIConfig] = None):
        self.api_key = api_key
        self.config = config or OpenAIConfig()

    def _url(self, endpoint: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{endpoint}"

    def _session(self) -> aiohttp.ClientSession:
        timeout = aiohttp.ClientTimeout(total=self.config.request_timeout_seconds)
        return aiohttp.ClientSession(
            headers={"Authorization": f"Bearer {self.api_key}"}, timeout=timeout
        )

    @staticmethod
    async def _read_json(response: aiohttp.ClientResponse) -> Dict[str, Any]:
        if response.status != 200:
            error_text = await response.text()
            raise OpenAIServiceError(
                f"OpenAI API error {response.status}: {error_text[:500]}",
                status=response.status,
            )

        try:
            return await response.json()
        except ValueError as decode_error:
            raise OpenAIServiceError(
                f"OpenAI API returned invalid JSON: {decode_error}", status=response.status
            ) from decode_error

    async def chat_completion(self, content: MessageContent, max_tokens: int) -> str:
        data = {
            "model": self.config.chat_model,
            "messages": [{"role": "user", "content": content}],
            "max_tokens": max_tokens,
        }

        async with self._session() as session:
            async with session.post(self._url("chat/completions"), json=data) as response:
                result = await self._read_json(response)

        try:
            message_content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as shape_error:
            raise OpenAIServiceError(
                f"Unexpected chat completion response: {shape_error!r}"
            ) from shape_error

        return (message_content or "").strip()

    async def transcribe_audio(self, audio_data: bytes, file_name: str = "audio.mp3") -> str:
        form = aiohttp.FormData()
        form.add_field("file", audio_data, filename=file_name, content_type="audio/mpeg")
        form.add_field("model", self.config.transcription_model)

        async with self._session() as session:
            async with session.post(self._url("audio/transcriptions"), data=form) as response:
                result = await self._read_json(response)

        if "text" not in result:
            raise OpenAIServiceError("Transcription response has no text field")

        return result["text"]


class TranscriptionAdapter:
    """Responsible for turning an audio track into a transcript."""

    def __init__(self, client: CompletionClient, config: Optional[OpenAIConfig] = None):
        self.client = client
        self.config = config or OpenAIConfig()

    async def transcribe(self, audio_track: AudioTrack) -> Transcript:
        """
        Transcribe an audio track in one blocking call.

        Audio is not chunked: a track over the upload ceiling fails before
        anything is sent.

        Raises:
            TranscriptionError: If the track is too large or the service call fails
        """
        size_limit = self.config.max_transcription_upload_bytes
        if audio_track.size_bytes > size_limit:
            raise TranscriptionError(
                f"Audio track is {audio_track.size_bytes / (1024 * 1024):.1f}MB, "
                f"over the {size_limit / (1024 * 1024):.0f}MB transcription limit"
            )

        try:
            text = await self.client.transcribe_audio(audio_track.data, "audio.mp3")
        except SERVICE_ERRORS as service_error:
            logger.error(f"Transcription failed: {service_error}")
            raise TranscriptionError(f"Transcription failed: {service_error}") from service_error

        transcript = Transcript(text=text)
        logger.info(f"Transcription completed: {transcript.word_count} words")
        return transcript


class CompletionStage:
    """Shared call path of the three summarization stages."""

    stage_name = "summary"

    def __init__(self, client: CompletionClient, config: Optional[OpenAIConfig] = None):
        self.client = client
        self.config = config or OpenAIConfig()

    async def _complete(self, content: MessageContent, max_tokens: int) -> str:
        try:
            return await self.client.chat_completion(content, max_tokens)
        except SERVICE_ERRORS as service_error:
            logger.error(f"{self.stage_name.capitalize()} generation failed: {service_error}")
            raise SummarizationError(
                f"{self.stage_name.capitalize()} generation failed: {service_error}"
            ) from service_error


class VisionSummarizer(CompletionStage):
    """Describes the visual content of sampled frames."""

    stage_name = "visual summary"

    def build_content(self, frames: Sequence[EncodedFrame]) -> List[Dict[str, Any]]:
        """Build the multimodal message: the instructions followed by the leading frames."""
        content: List[Dict[str, Any]] = [
            {"type": "text", "text": summary_prompts.visual_summary}
        ]
        for frame in list(frames)[: self.config.max_vision_frames]:
            content.append(
                {
                    "type": "image_url",
                    "image_url": {
                        "url": f"data:image/jpeg;base64,{frame.data}",
                        "detail": self.config.image_detail,
                    },
                }
            )
        return content

    async def summarize(self, frames: Sequence[EncodedFrame]) -> str:
        content = self.build_content(frames)
        logger.info(f"Generating visual summary from {len(content) - 1} frames")
        return await self._complete(content, self.config.visual_max_tokens)


class AudioSummarizer(CompletionStage):
    """Summarizes the spoken content of a transcript."""

    stage_name = "audio summary"

    async def summarize(self, transcript: Transcript) -> str:
        logger.info(f"Generating audio summary from {transcript.word_count} words")
        prompt = summary_prompts.audio_summary.format(transcript=transcript.text)
        return await self._complete(prompt, self.config.audio_max_tokens)


class Consolidator(CompletionStage):
    """Merges the visual and audio summaries into one overview."""

    stage_name = "consolidated summary"

    async def consolidate(self, visual_summary: str, audio_summary: str) -> str:
        logger.info("Generating consolidated summary")
        prompt = summary_prompts.consolidated_summary.format(
            visual_summary=visual_summary, audio_summary=audio_summary
        )
        return await self._complete(prompt, self.config.consolidation_max_tokens)


@dataclass
class SummaryServices:
    """The four service-calling components, bound to one credential."""

    transcriber: TranscriptionAdapter
    vision_summarizer: VisionSummarizer
    audio_summarizer: AudioSummarizer
    consolidator: Consolidator


def build_summary_services(
    client: CompletionClient, config: Optional[OpenAIConfig] = None
) -> SummaryServices:
    """Wire all service components around one client."""
    config = config or OpenAIConfig()
    return SummaryServices(
        transcriber=TranscriptionAdapter(client, config),
        vision_summarizer=VisionSummarizer(client, config),
        audio_summarizer=AudioSummarizer(client, config),
        consolidator=Consolidator(client, config),
    )


def build_openai_services(api_key: str, config: Optional[OpenAIConfig] = None) -> SummaryServices:
    """Create the service components for a credential using the OpenAI API."""
    config = config or create_openai_config()
    return build_summary_services(OpenAIClient(api_key, config), config)
