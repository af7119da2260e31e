"""Tests for the OpenAI client and the summary service adapters."""

import unittest
from unittest.mock import patch

from aiohttp import web
from aiohttp.test_utils import TestServer

from artifact_store import AudioTrack, Transcript
from openai_services import (
    AudioSummarizer,
    Consolidator,
    OpenAIClient,
    OpenAIConfig,
    OpenAIServiceError,
    TranscriptionAdapter,
    VisionSummarizer,
    create_openai_config,
)
from pipeline_errors import SummarizationError, TranscriptionError
from pipeline_fakes import FAKE_AUDIO_PAYLOAD, FakeCompletionClient, encoded_frames


class FakeOpenAIServer:
    """aiohttp application that imitates the two OpenAI endpoints used."""

    def __init__(self):
        self.requests = []
        self.chat_response = {"choices": [{"message": {"content": "  A short summary.  "}}]}
        self.transcription_response = {"text": "hello from the video"}
        self.status = 200

    def make_app(self):
        app = web.Application()
        app.router.add_post("/v1/chat/completions", self.chat_completions)
        app.router.add_post("/v1/audio/transcriptions", self.transcriptions)
        return app

    async def chat_completions(self, request):
        self.requests.append(
            {
                "path": request.path,
                "authorization": request.headers.get("Authorization"),
                "json": await request.json(),
            }
        )
        if self.status != 200:
            return web.Response(status=self.status, text="rate limited")
        return web.json_response(self.chat_response)

    async def transcriptions(self, request):
        form = await request.post()
        self.requests.append(
            {
                "path": request.path,
                "authorization": request.headers.get("Authorization"),
                "model": form["model"],
                "file_name": form["file"].filename,
                "file": form["file"].file.read(),
            }
        )
        if self.status != 200:
            return web.Response(status=self.status, text="server error")
        return web.json_response(self.transcription_response)


class OpenAIClientTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.fake_server = FakeOpenAIServer()
        self.server = TestServer(self.fake_server.make_app())
        await self.server.start_server()
        self.config = OpenAIConfig(base_url=str(self.server.make_url("/v1")))
        self.client = OpenAIClient("sk-test-key", self.config)

    async def asyncTearDown(self):
        await self.server.close()

    async def test_chat_completion_request_and_response(self):
        result = await self.client.chat_completion("Summarize this", max_tokens=1500)

        self.assertEqual(result, "A short summary.")
        request = self.fake_server.requests[0]
        self.assertEqual(request["authorization"], "Bearer sk-test-key")
        self.assertEqual(
            request["json"],
            {
                "model": "gpt-4o",
                "messages": [{"role": "user", "content": "Summarize this"}],
                "max_tokens": 1500,
            },
        )

    async def test_transcription_uploads_file_and_model(self):
        text = await self.client.transcribe_audio(FAKE_AUDIO_PAYLOAD, "audio.mp3")

        self.assertEqual(text, "hello from the video")
        request = self.fake_server.requests[0]
        self.assertEqual(request["path"], "/v1/audio/transcriptions")
        self.assertEqual(request["model"], "whisper-1")
        self.assertEqual(request["file_name"], "audio.mp3")
        self.assertEqual(request["file"], FAKE_AUDIO_PAYLOAD)

    async def test_error_status_raises_service_error(self):
        self.fake_server.status = 429

        with self.assertRaises(OpenAIServiceError) as raised:
            await self.client.chat_completion("Summarize this", max_tokens=10)
        self.assertEqual(raised.exception.status, 429)
        self.assertIn("rate limited", str(raised.exception))

    async def test_unexpected_chat_shape_raises_service_error(self):
        self.fake_server.chat_response = {"choices": []}

        with self.assertRaises(OpenAIServiceError):
            await self.client.chat_completion("Summarize this", max_tokens=10)

    async def test_transcription_without_text_raises_service_error(self):
        self.fake_server.transcription_response = {"segments": []}

        with self.assertRaises(OpenAIServiceError):
            await self.client.transcribe_audio(FAKE_AUDIO_PAYLOAD, "audio.mp3")


class TranscriptionAdapterTests(unittest.IsolatedAsyncioTestCase):
    async def test_returns_transcript(self):
        client = FakeCompletionClient(transcript_text="one two three")

        transcript = await TranscriptionAdapter(client).transcribe(AudioTrack(FAKE_AUDIO_PAYLOAD))

        self.assertEqual(transcript.text, "one two three")
        self.assertEqual(transcript.word_count, 3)
        self.assertEqual(client.transcription_calls, [FAKE_AUDIO_PAYLOAD])

    async def test_service_failure_becomes_transcription_error(self):
        client = FakeCompletionClient(failing_stages={"transcription"})

        with self.assertRaises(TranscriptionError) as raised:
            await TranscriptionAdapter(client).transcribe(AudioTrack(FAKE_AUDIO_PAYLOAD))
        self.assertIn("503", raised.exception.message)

    async def test_oversized_track_is_rejected_before_upload(self):
        client = FakeCompletionClient()
        config = OpenAIConfig(max_transcription_upload_bytes=4)

        with self.assertRaises(TranscriptionError):
            await TranscriptionAdapter(client, config).transcribe(AudioTrack(b"12345"))
        self.assertEqual(client.transcription_calls, [])


class SummarizerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.client = FakeCompletionClient()

    def test_vision_content_is_capped_at_ten_frames(self):
        content = VisionSummarizer(self.client).build_content(encoded_frames(20).frames)

        image_parts = [part for part in content if part["type"] == "image_url"]
        self.assertEqual(content[0]["type"], "text")
        self.assertEqual(len(image_parts), 10)
        self.assertTrue(image_parts[0]["image_url"]["url"].startswith("data:image/jpeg;base64,"))
        self.assertEqual(image_parts[0]["image_url"]["detail"], "low")

    def test_vision_content_keeps_leading_frames_in_order(self):
        frames = encoded_frames(12).frames

        content = VisionSummarizer(self.client).build_content(frames)

        urls = [part["image_url"]["url"] for part in content[1:]]
        self.assertEqual(urls, [f"data:image/jpeg;base64,{frame.data}" for frame in frames[:10]])

    def test_vision_content_with_few_frames(self):
        content = VisionSummarizer(self.client).build_content(encoded_frames(3).frames)

        self.assertEqual(len(content), 4)

    async def test_vision_summary_uses_its_token_ceiling(self):
        summary = await VisionSummarizer(self.client).summarize(encoded_frames(2).frames)

        self.assertEqual(summary, "visual summary")
        self.assertEqual(self.client.calls_for("visual")[0]["max_tokens"], 1500)

    async def test_audio_summary_embeds_transcript(self):
        summary = await AudioSummarizer(self.client).summarize(
            Transcript(text="we sand the boards")
        )

        self.assertEqual(summary, "audio summary")
        call = self.client.calls_for("audio")[0]
        self.assertIn("we sand the boards", call["content"])
        self.assertEqual(call["max_tokens"], 1500)

    async def test_consolidation_embeds_both_summaries(self):
        final_summary = await Consolidator(self.client).consolidate("VISUAL TEXT", "AUDIO TEXT")

        self.assertEqual(final_summary, "consolidation summary")
        call = self.client.calls_for("consolidation")[0]
        self.assertIn("VISUAL TEXT", call["content"])
        self.assertIn("AUDIO TEXT", call["content"])
        self.assertEqual(call["max_tokens"], 2000)

    async def test_service_failure_becomes_summarization_error(self):
        client = FakeCompletionClient(failing_stages={"audio"})

        with self.assertRaises(SummarizationError):
            await AudioSummarizer(client).summarize(Transcript(text="words"))


class OpenAIConfigTests(unittest.TestCase):
    @patch.dict(
        "os.environ",
        {
            "OPENAI_BASE_URL": "http://localhost:9999/v1",
            "OPENAI_CHAT_MODEL": "gpt-4o-mini",
            "OPENAI_CONSOLIDATION_MAX_TOKENS": "500",
            "OPENAI_REQUEST_TIMEOUT": "30",
        },
    )
    def test_environment_overrides(self):
        config = create_openai_config()

        self.assertEqual(config.base_url, "http://localhost:9999/v1")
        self.assertEqual(config.chat_model, "gpt-4o-mini")
        self.assertEqual(config.consolidation_max_tokens, 500)
        self.assertEqual(config.request_timeout_seconds, 30.0)
        self.assertEqual(config.transcription_model, "whisper-1")

    @patch.dict("os.environ", {}, clear=True)
    def test_defaults(self):
        config = create_openai_config()

        self.assertEqual(config.chat_model, "gpt-4o")
        self.assertEqual(config.visual_max_tokens, 1500)
        self.assertEqual(config.audio_max_tokens, 1500)
        self.assertIsNone(config.request_timeout_seconds)


if __name__ == "__main__":
    unittest.main()
