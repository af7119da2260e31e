import json
import shutil
import tempfile
from io import StringIO
from pathlib import Path
from unittest.mock import patch

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import Client, TestCase, override_settings
from django.urls import reverse

from pipeline_fakes import FakeCompletionClient, FakeMediaTool, FakeServiceFactory

from .credentials import DatabaseCredentialProvider
from .models import ServiceCredential
from .services import build_summary_pipeline

VIDEO_ID = "dQw4w9WgXcQ"
TEST_API_KEY = "sk-test-abcdef123456"


class SummaryTestCase(TestCase):
    """Base class that wires the web layer to a pipeline over a temporary data directory."""

    def setUp(self):
        self.client = Client()
        self.data_directory = Path(tempfile.mkdtemp())
        self.addCleanup(shutil.rmtree, self.data_directory, ignore_errors=True)

        (self.data_directory / "videos").mkdir()
        (self.data_directory / "videos" / f"{VIDEO_ID}.mp4").write_bytes(b"mp4 data")

        self.media_tool = FakeMediaTool(duration=95)
        self.completion_client = FakeCompletionClient()
        self.service_factory = FakeServiceFactory(self.completion_client)

        with override_settings(VNOTES_DATA_DIR=str(self.data_directory)):
            self.pipeline = build_summary_pipeline(
                media_tool=self.media_tool, service_factory=self.service_factory
            )

    def use_pipeline(self, target):
        patcher = patch(target, return_value=self.pipeline)
        patcher.start()
        self.addCleanup(patcher.stop)


class SummarizeApiTests(SummaryTestCase):
    """Test the summary endpoint."""

    def setUp(self):
        super().setUp()
        self.use_pipeline("video_summaries.views.get_summary_pipeline")
        DatabaseCredentialProvider().set(TEST_API_KEY)

    def post_summary(self, payload):
        return self.client.post(
            reverse("api_summarize"), data=json.dumps(payload), content_type="application/json"
        )

    def test_summarize_video(self):
        """Test a full run followed by a cached run."""
        response = self.post_summary({"videoId": VIDEO_ID})
        self.assertEqual(response.status_code, 200)

        data = json.loads(response.content)
        self.assertTrue(data["success"])
        self.assertEqual(data["videoId"], VIDEO_ID)
        self.assertEqual(data["finalSummary"], "consolidation summary")
        self.assertEqual(data["frameCount"], 10)
        self.assertEqual(data["cacheFlags"], {"audio": False, "frames": False, "transcript": False})
        self.assertEqual(self.service_factory.api_keys, [TEST_API_KEY])

        response = self.post_summary({"videoId": VIDEO_ID})
        data = json.loads(response.content)
        self.assertEqual(data["cacheFlags"], {"audio": True, "frames": True, "transcript": True})

    def test_summarize_by_source_url(self):
        """Test that a source URL resolves to its video id."""
        response = self.post_summary({"url": f"https://www.youtube.com/watch?v={VIDEO_ID}"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(json.loads(response.content)["videoId"], VIDEO_ID)

    def test_missing_video_id(self):
        response = self.post_summary({})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(json.loads(response.content)["kind"], "InvalidInput")

    def test_invalid_json(self):
        response = self.client.post(
            reverse("api_summarize"), data="{not json", content_type="application/json"
        )

        self.assertEqual(response.status_code, 400)

    def test_video_not_downloaded(self):
        response = self.post_summary({"videoId": "notDownloaded"})

        self.assertEqual(response.status_code, 404)
        data = json.loads(response.content)
        self.assertEqual(data["kind"], "NotFound")
        self.assertEqual(data["error"], "Video not found. Please download it first.")
        self.assertEqual(self.media_tool.calls, [])

    def test_credential_not_configured(self):
        DatabaseCredentialProvider().clear()

        response = self.post_summary({"videoId": VIDEO_ID})

        self.assertEqual(response.status_code, 412)
        self.assertEqual(json.loads(response.content)["kind"], "Unconfigured")
        self.assertEqual(self.media_tool.calls, [])

    def test_extraction_failure(self):
        self.media_tool.fail_audio = True

        response = self.post_summary({"videoId": VIDEO_ID})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(json.loads(response.content)["kind"], "ExtractionError")

    def test_upstream_failures(self):
        """Test that service failures are reported as upstream errors."""
        self.completion_client.failing_stages = {"transcription"}
        response = self.post_summary({"videoId": VIDEO_ID})
        self.assertEqual(response.status_code, 502)
        self.assertEqual(json.loads(response.content)["kind"], "TranscriptionError")

        self.completion_client.failing_stages = {"consolidation"}
        response = self.post_summary({"videoId": VIDEO_ID})
        self.assertEqual(response.status_code, 502)
        self.assertEqual(json.loads(response.content)["kind"], "SummarizationError")

    def test_status_endpoint(self):
        """Test the cached-artifact report before and after a run."""
        response = self.client.get(reverse("api_summarize"), {"videoId": VIDEO_ID})
        self.assertEqual(response.status_code, 200)

        data = json.loads(response.content)
        self.assertTrue(data["videoExists"])
        self.assertFalse(data["cached"]["hasAudio"])
        self.assertIsNone(data["cached"]["audioPath"])

        self.post_summary({"videoId": VIDEO_ID})

        data = json.loads(self.client.get(reverse("api_summarize"), {"videoId": VIDEO_ID}).content)
        self.assertTrue(data["cached"]["hasFrames"])
        self.assertEqual(data["cached"]["transcriptPath"], f"/transcripts/{VIDEO_ID}.txt")

    def test_status_requires_video_id(self):
        response = self.client.get(reverse("api_summarize"))

        self.assertEqual(response.status_code, 400)

    def test_method_not_allowed(self):
        response = self.client.put(reverse("api_summarize"))

        self.assertEqual(response.status_code, 405)


class KeysApiTests(TestCase):
    """Test the credential endpoint."""

    def test_store_read_and_clear_key(self):
        response = self.client.get(reverse("api_keys"))
        self.assertEqual(json.loads(response.content), {"configured": False, "openaiApiKey": ""})

        response = self.client.post(
            reverse("api_keys"),
            data=json.dumps({"openaiApiKey": TEST_API_KEY}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(ServiceCredential.objects.get().api_key, TEST_API_KEY)

        response = self.client.get(reverse("api_keys"))
        data = json.loads(response.content)
        self.assertTrue(data["configured"])
        self.assertEqual(data["openaiApiKey"], "sk-...3456")
        self.assertNotIn(TEST_API_KEY, response.content.decode())

        response = self.client.delete(reverse("api_keys"))
        self.assertEqual(response.status_code, 200)
        self.assertFalse(ServiceCredential.objects.exists())

    def test_empty_key_is_rejected(self):
        response = self.client.post(
            reverse("api_keys"),
            data=json.dumps({"openaiApiKey": "   "}),
            content_type="application/json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertFalse(ServiceCredential.objects.exists())


class DatabaseCredentialProviderTests(TestCase):
    def test_single_record_per_provider(self):
        provider = DatabaseCredentialProvider()
        provider.set("sk-first-000000")
        provider.set("  sk-second-111111 ")

        self.assertEqual(ServiceCredential.objects.count(), 1)
        self.assertEqual(provider.get(), "sk-second-111111")

    def test_clear_without_record(self):
        provider = DatabaseCredentialProvider()
        provider.clear()

        self.assertIsNone(provider.get())

    def test_masked_display(self):
        credential = ServiceCredential.objects.create(api_key=TEST_API_KEY)

        self.assertEqual(str(credential), "OpenAI (sk-...3456)")


class HealthCheckTests(TestCase):
    def test_health_check(self):
        """Test health check endpoint reports credential state."""
        response = self.client.get(reverse("health_check"))
        self.assertEqual(response.status_code, 200)

        data = json.loads(response.content)
        self.assertEqual(data["status"], "healthy")
        self.assertEqual(data["database"], "connected")
        self.assertEqual(data["credential"], "missing")

        DatabaseCredentialProvider().set(TEST_API_KEY)
        data = json.loads(self.client.get(reverse("health_check")).content)
        self.assertEqual(data["credential"], "configured")


class VideoSummaryCommandTests(SummaryTestCase):
    """Test the video_summary management command."""

    def setUp(self):
        super().setUp()
        self.use_pipeline("video_summaries.management.commands.video_summary.get_summary_pipeline")

    def call(self, *args):
        out = StringIO()
        call_command("video_summary", *args, stdout=out)
        return out.getvalue()

    def test_key_commands(self):
        self.call("set-key", TEST_API_KEY)
        self.assertIn("sk-...3456", self.call("show-key"))

        self.call("clear-key")
        self.assertIn("No API key configured", self.call("show-key"))

    def test_run_and_save_output(self):
        DatabaseCredentialProvider().set(TEST_API_KEY)
        output_path = self.data_directory / "summary.json"

        output = self.call("run", VIDEO_ID, "--output", str(output_path))

        self.assertIn("consolidation summary", output)
        saved = json.loads(output_path.read_text())
        self.assertEqual(saved["frameCount"], 10)

    def test_run_by_source_url(self):
        DatabaseCredentialProvider().set(TEST_API_KEY)

        output = self.call("run", f"https://youtu.be/{VIDEO_ID}")

        self.assertIn("Summary ready", output)

    def test_run_without_key(self):
        with self.assertRaises(CommandError) as raised:
            self.call("run", VIDEO_ID)

        self.assertIn("Unconfigured", str(raised.exception))

    def test_status(self):
        output = self.call("status", VIDEO_ID)

        self.assertIn(VIDEO_ID, output)
        self.assertIn("Source video: ✅", output)

    def test_missing_subcommand(self):
        with self.assertRaises(CommandError):
            self.call()
