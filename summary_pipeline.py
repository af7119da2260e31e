#!/usr/bin/env python3
"""
Video Summary Pipeline

Produces a natural-language summary of a downloaded video:

    1. extract a compressed mono audio track
    2. transcribe it
    3. sample still frames across the video
    4. summarize the frames and the transcript separately
    5. consolidate both summaries into one overview

Audio, transcript and frames are cached per video identifier in the
artifact store, so a repeated request resumes at the first stage that has
no artifact. Summaries themselves are recomputed on every run.
"""

import asyncio
import json
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union

from artifact_store import (
    ArtifactStore,
    FileSystemArtifactStore,
    FrameSet,
    StageKind,
    Transcript,
    VideoLibrary,
)
from credentials import CredentialProvider, JsonFileCredentialProvider, mask_api_key
from media_processor import AudioExtractor, FFmpegMediaTool, FrameSampler
from openai_services import SummaryServices, build_openai_services
from pipeline_errors import (
    CredentialNotConfiguredError,
    PipelineError,
    VideoNotFoundError,
)
from video_ids import validate_video_id

logger = logging.getLogger(__name__)

ServiceFactory = Callable[[str], SummaryServices]


@dataclass
class CacheFlags:
    """Which intermediate artifacts were already cached when a run started."""

    audio: bool
    frames: bool
    transcript: bool

    def to_dict(self) -> Dict[str, bool]:
        return {"audio": self.audio, "frames": self.frames, "transcript": self.transcript}


@dataclass
class PipelineResult:
    """
    Outcome of one pipeline run.

    frame_count is the size of the frame set, which may exceed the number of
    frames actually shown to the vision model.
    """

    video_id: str
    final_summary: str
    visual_summary: str
    audio_summary: str
    frame_count: int
    cache_flags: CacheFlags

    def to_dict(self) -> Dict[str, Any]:
        """Convert the result to the response payload."""
        return {
            "success": True,
            "videoId": self.video_id,
            "finalSummary": self.final_summary,
            "visualSummary": self.visual_summary,
            "audioSummary": self.audio_summary,
            "frameCount": self.frame_count,
            "cacheFlags": self.cache_flags.to_dict(),
        }


@dataclass
class VideoStatus:
    """Presence of a source video and its cached artifacts."""

    video_id: str
    video_exists: bool
    cache_flags: CacheFlags
    audio_location: Optional[str] = None
    frames_location: Optional[str] = None
    transcript_location: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "videoId": self.video_id,
            "videoExists": self.video_exists,
            "cached": {
                "hasAudio": self.cache_flags.audio,
                "hasFrames": self.cache_flags.frames,
                "hasTranscript": self.cache_flags.transcript,
                "audioPath": self.audio_location,
                "framesDir": self.frames_location,
                "transcriptPath": self.transcript_location,
            },
        }


class VideoSummaryPipeline:
    """
    Main summary coordinator.

    Sequences the stages, consulting the artifact store before each one.
    Every failure aborts the run and propagates as a PipelineError;
    artifacts written before the failure stay cached. Concurrent runs for
    the same video are not coordinated.
    """

    def __init__(
        self,
        artifact_store: ArtifactStore,
        video_library: VideoLibrary,
        credential_provider: CredentialProvider,
        audio_extractor: AudioExtractor,
        frame_sampler: FrameSampler,
        service_factory: ServiceFactory = build_openai_services,
        parallel_summaries: bool = True,
    ):
        """
        Initialize the pipeline with its collaborators.

        Args:
            artifact_store: Cache for audio, transcript and frame artifacts
            video_library: Location of downloaded source videos
            credential_provider: Source of the service credential
            audio_extractor: Audio extraction stage
            frame_sampler: Frame sampling stage
            service_factory: Builds the service-calling components for a credential
            parallel_summaries: Run the visual and audio summaries concurrently
        """
        self.artifact_store = artifact_store
        self.video_library = video_library
        self.credential_provider = credential_provider
        self.audio_extractor = audio_extractor
        self.frame_sampler = frame_sampler
        self.service_factory = service_factory
        self.parallel_summaries = parallel_summaries

    @classmethod
    def create(
        cls,
        data_directory: Union[str, Path],
        credential_provider: CredentialProvider,
        media_tool=None,
        service_factory: Optional[ServiceFactory] = None,
        parallel_summaries: bool = True,
        temp_directory: Optional[str] = None,
    ) -> "VideoSummaryPipeline":
        """Build a pipeline that keeps videos and artifacts under one directory."""
        media_tool = media_tool or FFmpegMediaTool()
        return cls(
            artifact_store=FileSystemArtifactStore(data_directory),
            video_library=VideoLibrary(data_directory),
            credential_provider=credential_provider,
            audio_extractor=AudioExtractor(media_tool, temp_directory=temp_directory),
            frame_sampler=FrameSampler(media_tool, media_tool, temp_directory=temp_directory),
            service_factory=service_factory or build_openai_services,
            parallel_summaries=parallel_summaries,
        )

    def _cache_flags(self, video_id: str) -> CacheFlags:
        return CacheFlags(
            audio=self.artifact_store.exists(video_id, StageKind.AUDIO),
            frames=self.artifact_store.exists(video_id, StageKind.FRAMES),
            transcript=self.artifact_store.exists(video_id, StageKind.TRANSCRIPT),
        )

    def status(self, video_id: str) -> VideoStatus:
        """
        Report what is already available for a video without doing any work.

        Raises:
            InvalidInputError: If the identifier is missing or malformed
        """
        validate_video_id(video_id)
        cache_flags = self._cache_flags(video_id)

        def location_if(cached: bool, kind: StageKind) -> Optional[str]:
            return self.artifact_store.location(video_id, kind) if cached else None

        return VideoStatus(
            video_id=video_id,
            video_exists=self.video_library.exists(video_id),
            cache_flags=cache_flags,
            audio_location=location_if(cache_flags.audio, StageKind.AUDIO),
            frames_location=location_if(cache_flags.frames, StageKind.FRAMES),
            transcript_location=location_if(cache_flags.transcript, StageKind.TRANSCRIPT),
        )

    def run(self, video_id: str) -> PipelineResult:
        """
        Run the full pipeline for a video.

        Args:
            video_id: Identifier of a downloaded video

        Returns:
            PipelineResult with all three summaries and per-stage cache flags

        Raises:
            InvalidInputError: Identifier missing or malformed
            VideoNotFoundError: Source video has not been downloaded
            CredentialNotConfiguredError: No API key is configured
            ExtractionError: The media tool failed
            TranscriptionError: The speech-to-text call failed
            SummarizationError: A completion call failed
        """
        validate_video_id(video_id)
        video_path = self._require_source_video(video_id)
        api_key = self._require_credential()

        services = self.service_factory(api_key)
        cache_flags = self._cache_flags(video_id)
        logger.info(f"Starting summary pipeline for {video_id} (cached: {cache_flags.to_dict()})")

        self._audio_stage(video_id, video_path, cache_flags.audio)
        transcript = self._transcript_stage(video_id, services, cache_flags.transcript)
        frame_set = self._frames_stage(video_id, video_path, cache_flags.frames)

        logger.info(f"Generating summary for {video_id}")
        visual_summary, audio_summary, final_summary = self._run_coroutine(
            self._summarize(services, frame_set, transcript)
        )

        return PipelineResult(
            video_id=video_id,
            final_summary=final_summary,
            visual_summary=visual_summary,
            audio_summary=audio_summary,
            frame_count=len(frame_set),
            cache_flags=cache_flags,
        )

    def _require_source_video(self, video_id: str) -> str:
        if not self.video_library.exists(video_id):
            raise VideoNotFoundError("Video not found. Please download it first.")
        return str(self.video_library.path_for(video_id))

    def _require_credential(self) -> str:
        api_key = self.credential_provider.get()
        if not api_key:
            raise CredentialNotConfiguredError(
                "OpenAI API key not configured. Please set it in settings."
            )
        return api_key

    def _audio_stage(self, video_id: str, video_path: str, cached: bool) -> None:
        if cached:
            logger.info(f"Using cached audio for {video_id}")
            return

        logger.info(f"Extracting audio for {video_id}")
        audio_track = self.audio_extractor.extract(video_path)
        self.artifact_store.write(video_id, StageKind.AUDIO, audio_track)

    def _transcript_stage(
        self, video_id: str, services: SummaryServices, cached: bool
    ) -> Transcript:
        if cached:
            logger.info(f"Using cached transcript for {video_id}")
            return self.artifact_store.read(video_id, StageKind.TRANSCRIPT)

        logger.info(f"Transcribing audio for {video_id}")
        audio_track = self.artifact_store.read(video_id, StageKind.AUDIO)
        transcript = self._run_coroutine(services.transcriber.transcribe(audio_track))
        self.artifact_store.write(video_id, StageKind.TRANSCRIPT, transcript)
        return transcript

    def _frames_stage(self, video_id: str, video_path: str, cached: bool) -> FrameSet:
        if cached:
            logger.info(f"Using cached frames for {video_id}")
            return self.artifact_store.read(video_id, StageKind.FRAMES)

        logger.info(f"Extracting frames for {video_id}")
        return self.frame_sampler.sample(
            video_path, on_frame=lambda frame: self.artifact_store.write_frame(video_id, frame)
        )

    async def _summarize(
        self, services: SummaryServices, frame_set: FrameSet, transcript: Transcript
    ) -> Tuple[str, str, str]:
        if self.parallel_summaries:
            # Wait for both before raising so neither call is left pending
            outcomes = await asyncio.gather(
                services.vision_summarizer.summarize(frame_set.frames),
                services.audio_summarizer.summarize(transcript),
                return_exceptions=True,
            )
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome
            visual_summary, audio_summary = outcomes
        else:
            visual_summary = await services.vision_summarizer.summarize(frame_set.frames)
            audio_summary = await services.audio_summarizer.summarize(transcript)

        final_summary = await services.consolidator.consolidate(visual_summary, audio_summary)
        return visual_summary, audio_summary, final_summary

    @staticmethod
    def _run_coroutine(coroutine):
        event_loop = asyncio.new_event_loop()
        try:
            return event_loop.run_until_complete(coroutine)
        finally:
            event_loop.close()


def main():
    """
    Command-line interface for the summary pipeline.

    Uses the same storage layout and credential file as the web application.
    """
    import argparse

    parser = argparse.ArgumentParser(
        description="Video Summary Pipeline - cached audio/visual video summaries",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python summary_pipeline.py set-key sk-...
  python summary_pipeline.py status dQw4w9WgXcQ
  python summary_pipeline.py run dQw4w9WgXcQ --output summary.json
        """,
    )

    parser.add_argument(
        "action",
        choices=["status", "run", "set-key", "clear-key", "show-key"],
        help="Action to perform",
    )
    parser.add_argument("value", nargs="?", help="Video id, or the API key for set-key")
    parser.add_argument(
        "--data-dir",
        default=os.getenv("VNOTES_DATA_DIR", "public"),
        help="Directory holding videos/ and cached artifacts (default: public)",
    )
    parser.add_argument("--config-dir", help="Directory holding keys.json (default: .vnotes)")
    parser.add_argument("--output", help="Output file path for results (JSON format)")
    parser.add_argument(
        "--sequential",
        action="store_true",
        help="Generate the visual and audio summaries one after the other",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    credential_provider = JsonFileCredentialProvider(args.config_dir)

    if args.action == "set-key":
        if not args.value:
            parser.error("set-key requires the API key")
        credential_provider.set(args.value)
        print("API key saved")
        return

    if args.action == "clear-key":
        credential_provider.clear()
        print("API key cleared")
        return

    if args.action == "show-key":
        api_key = credential_provider.get()
        print(mask_api_key(api_key) if api_key else "No API key configured")
        return

    pipeline = VideoSummaryPipeline.create(
        args.data_dir, credential_provider, parallel_summaries=not args.sequential
    )

    try:
        if args.action == "status":
            result_data = pipeline.status(args.value).to_dict()
        else:
            result_data = pipeline.run(args.value).to_dict()
    except PipelineError as pipeline_error:
        print(json.dumps(pipeline_error.to_dict(), indent=2))
        sys.exit(1)

    print(json.dumps(result_data, indent=2))

    if args.output:
        with open(args.output, "w") as output_file:
            json.dump(result_data, output_file, indent=2)
        print(f"Results saved to: {args.output}")


if __name__ == "__main__":
    main()
