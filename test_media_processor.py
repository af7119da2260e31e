"""Tests for sampling schedules, audio extraction and frame sampling."""

import base64
import subprocess
import unittest
from unittest.mock import patch

from media_processor import (
    AudioExtractor,
    FFmpegMediaTool,
    FrameSampler,
    MediaToolError,
    SamplingSchedule,
)
from pipeline_errors import ExtractionError
from pipeline_fakes import FAKE_AUDIO_PAYLOAD, FakeMediaTool, fake_jpeg_payload


class SamplingScheduleTests(unittest.TestCase):
    def test_ninety_five_second_video(self):
        schedule = SamplingSchedule(duration=95)

        self.assertEqual(schedule.frame_count, 10)
        self.assertAlmostEqual(schedule.interval, 9.5)
        expected = [min(i * 9.5 + 4.75, 94) for i in range(10)]
        for actual, wanted in zip(schedule.timestamps, expected):
            self.assertAlmostEqual(actual, wanted)
        self.assertTrue(all(timestamp <= 94 for timestamp in schedule.timestamps))

    def test_short_video_gets_one_frame(self):
        schedule = SamplingSchedule(duration=5)

        self.assertEqual(schedule.frame_count, 1)
        self.assertEqual(len(schedule.timestamps), 1)
        self.assertLessEqual(schedule.timestamps[0], 4)
        self.assertAlmostEqual(schedule.timestamps[0], 2.5)

    def test_long_video_is_capped_at_frame_budget(self):
        schedule = SamplingSchedule(duration=3600)

        self.assertEqual(schedule.frame_count, 20)
        self.assertAlmostEqual(schedule.timestamps[0], 90.0)
        self.assertAlmostEqual(schedule.timestamps[-1], 3510.0)

    def test_timestamps_are_increasing(self):
        timestamps = SamplingSchedule(duration=187.3).timestamps

        self.assertEqual(timestamps, sorted(timestamps))

    def test_custom_budget(self):
        self.assertEqual(SamplingSchedule(duration=95, max_frames=4).frame_count, 4)

    def test_zero_duration_has_no_frames(self):
        schedule = SamplingSchedule(duration=0)

        self.assertEqual(schedule.frame_count, 0)
        self.assertEqual(schedule.timestamps, [])

    def test_sub_second_video_is_clamped_to_start(self):
        self.assertEqual(SamplingSchedule(duration=0.5).timestamps, [0.0])


class AudioExtractorTests(unittest.TestCase):
    def test_extracts_mono_32k_track(self):
        media_tool = FakeMediaTool()

        audio_track = AudioExtractor(media_tool).extract("/videos/abc.mp4")

        self.assertEqual(audio_track.data, FAKE_AUDIO_PAYLOAD)
        self.assertEqual(media_tool.calls_to("extract_audio"), [("/videos/abc.mp4", "32k", 1)])

    def test_tool_failure_raises_extraction_error(self):
        extractor = AudioExtractor(FakeMediaTool(fail_audio=True))

        with self.assertRaises(ExtractionError) as raised:
            extractor.extract("/videos/abc.mp4")
        self.assertIn("no audio stream", raised.exception.message)

    def test_missing_output_raises_extraction_error(self):
        extractor = AudioExtractor(FakeMediaTool(audio_produces_file=False))

        with self.assertRaises(ExtractionError):
            extractor.extract("/videos/abc.mp4")


class FrameSamplerTests(unittest.TestCase):
    def test_samples_schedule_in_order(self):
        media_tool = FakeMediaTool(duration=95)
        sampler = FrameSampler(media_tool, media_tool)

        frame_set = sampler.sample("/videos/abc.mp4")

        self.assertEqual(len(frame_set), 10)
        self.assertEqual([frame.ordinal for frame in frame_set.frames], list(range(10)))
        self.assertEqual(media_tool.calls_to("extract_frame"), SamplingSchedule(95).timestamps)
        first_frame = base64.b64decode(frame_set.frames[0].data)
        self.assertEqual(first_frame, fake_jpeg_payload(4.75))

    def test_missing_frames_are_skipped(self):
        media_tool = FakeMediaTool(duration=95, missing_frame_calls={1, 4, 8})
        sampler = FrameSampler(media_tool, media_tool)

        frame_set = sampler.sample("/videos/abc.mp4")

        self.assertEqual(len(frame_set), 7)
        self.assertEqual([frame.ordinal for frame in frame_set.frames], [0, 2, 3, 5, 6, 7, 9])

    def test_failing_frame_extraction_does_not_abort(self):
        media_tool = FakeMediaTool(duration=30, failing_frame_calls={0})
        sampler = FrameSampler(media_tool, media_tool)

        frame_set = sampler.sample("/videos/abc.mp4")

        self.assertEqual([frame.ordinal for frame in frame_set.frames], [1, 2])

    def test_each_frame_is_handed_over_as_encoded(self):
        media_tool = FakeMediaTool(duration=25)
        received = []

        frame_set = FrameSampler(media_tool, media_tool).sample(
            "/videos/abc.mp4", on_frame=received.append
        )

        self.assertEqual(received, frame_set.frames)

    def test_probe_failure_raises_extraction_error(self):
        media_tool = FakeMediaTool(fail_probe=True)

        with self.assertRaises(ExtractionError):
            FrameSampler(media_tool, media_tool).sample("/videos/abc.mp4")
        self.assertEqual(media_tool.calls_to("extract_frame"), [])


class FFmpegMediaToolTests(unittest.TestCase):
    @patch("media_processor.subprocess.run")
    def test_probe_duration_parses_ffprobe_output(self, mock_run):
        mock_run.return_value = subprocess.CompletedProcess(args=[], returncode=0, stdout="95.040000\n")

        duration = FFmpegMediaTool().probe_duration("/videos/abc.mp4")

        self.assertAlmostEqual(duration, 95.04)
        command = mock_run.call_args[0][0]
        self.assertEqual(command[0], "ffprobe")
        self.assertIn("format=duration", command)

    @patch("media_processor.subprocess.run")
    def test_extract_audio_command(self, mock_run):
        FFmpegMediaTool().extract_audio("/videos/abc.mp4", "/tmp/abc.mp3", "32k", 1)

        command = mock_run.call_args[0][0]
        self.assertEqual(
            command,
            [
                "ffmpeg", "-i", "/videos/abc.mp4", "-vn", "-acodec", "libmp3lame",
                "-b:a", "32k", "-ac", "1", "-y", "/tmp/abc.mp3",
            ],
        )

    @patch("media_processor.subprocess.run")
    def test_extract_frame_seeks_before_input(self, mock_run):
        FFmpegMediaTool().extract_frame("/videos/abc.mp4", 4.75, "/tmp/frame_000.jpg")

        command = mock_run.call_args[0][0]
        self.assertEqual(command[:3], ["ffmpeg", "-ss", "4.750"])
        self.assertIn("-vframes", command)

    @patch("media_processor.subprocess.run")
    def test_non_zero_exit_raises_media_tool_error(self, mock_run):
        mock_run.side_effect = subprocess.CalledProcessError(1, ["ffmpeg"], stderr="boom")

        with self.assertRaises(MediaToolError) as raised:
            FFmpegMediaTool().extract_frame("/videos/abc.mp4", 1.0, "/tmp/f.jpg")
        self.assertIn("boom", str(raised.exception))

    @patch("media_processor.subprocess.run", side_effect=FileNotFoundError)
    def test_missing_binary_raises_media_tool_error(self, mock_run):
        with self.assertRaises(MediaToolError):
            FFmpegMediaTool().probe_duration("/videos/abc.mp4")

    @patch("media_processor.subprocess.run")
    def test_unparseable_duration_raises_media_tool_error(self, mock_run):
        mock_run.return_value = subprocess.CompletedProcess(args=[], returncode=0, stdout="N/A\n")

        with self.assertRaises(MediaToolError):
            FFmpegMediaTool().probe_duration("/videos/abc.mp4")


if __name__ == "__main__":
    unittest.main()
