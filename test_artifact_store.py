"""Tests for the filesystem artifact store and video identifiers."""

import tempfile
import unittest
from pathlib import Path

from artifact_store import (
    AudioTrack,
    EncodedFrame,
    FileSystemArtifactStore,
    FrameSet,
    StageKind,
    Transcript,
    VideoLibrary,
)
from pipeline_errors import ArtifactNotFoundError, InvalidInputError
from video_ids import extract_video_id, resolve_video_id, validate_video_id


class FileSystemArtifactStoreTests(unittest.TestCase):
    def setUp(self):
        self.temporary_directory = tempfile.TemporaryDirectory()
        self.root = Path(self.temporary_directory.name)
        self.store = FileSystemArtifactStore(self.root)

    def tearDown(self):
        self.temporary_directory.cleanup()

    def test_nothing_exists_initially(self):
        for kind in StageKind:
            self.assertFalse(self.store.exists("abc123", kind))

    def test_audio_round_trip(self):
        self.store.write("abc123", StageKind.AUDIO, AudioTrack(data=b"ID3 audio"))

        self.assertTrue(self.store.exists("abc123", StageKind.AUDIO))
        self.assertEqual(self.store.read("abc123", StageKind.AUDIO).data, b"ID3 audio")
        self.assertTrue((self.root / "audio" / "abc123.mp3").is_file())

    def test_transcript_is_plain_text(self):
        self.store.write("abc123", StageKind.TRANSCRIPT, Transcript(text="héllo wörld"))

        transcript_path = self.root / "transcripts" / "abc123.txt"
        self.assertEqual(transcript_path.read_text(encoding="utf-8"), "héllo wörld")
        self.assertEqual(self.store.read("abc123", StageKind.TRANSCRIPT).text, "héllo wörld")

    def test_write_replaces_previous_version(self):
        self.store.write("abc123", StageKind.TRANSCRIPT, Transcript(text="first"))
        self.store.write("abc123", StageKind.TRANSCRIPT, Transcript(text="second"))

        self.assertEqual(self.store.read("abc123", StageKind.TRANSCRIPT).text, "second")
        self.assertEqual(list((self.root / "transcripts").iterdir()), [self.root / "transcripts" / "abc123.txt"])

    def test_frames_are_keyed_by_padded_ordinal(self):
        self.store.write_frame("abc123", EncodedFrame(ordinal=2, data="Zm9v"))
        self.store.write_frame("abc123", EncodedFrame(ordinal=0, data="YmFy"))

        frames_directory = self.root / "frames" / "abc123"
        self.assertEqual(
            sorted(path.name for path in frames_directory.iterdir()),
            ["frame_000.txt", "frame_002.txt"],
        )
        frame_set = self.store.read("abc123", StageKind.FRAMES)
        self.assertEqual([frame.ordinal for frame in frame_set.frames], [0, 2])
        self.assertEqual(frame_set.frames[1].data, "Zm9v")

    def test_single_frame_counts_as_cached_frame_set(self):
        self.store.write_frame("abc123", EncodedFrame(ordinal=5, data="Zm9v"))

        self.assertTrue(self.store.exists("abc123", StageKind.FRAMES))

    def test_empty_frames_directory_is_not_cached(self):
        (self.root / "frames" / "abc123").mkdir(parents=True)
        (self.root / "frames" / "abc123" / "frame_000.jpg").write_bytes(b"raw")

        self.assertFalse(self.store.exists("abc123", StageKind.FRAMES))

    def test_frame_set_write_is_full_replace(self):
        self.store.write(
            "abc123",
            StageKind.FRAMES,
            FrameSet(frames=[EncodedFrame(0, "a"), EncodedFrame(1, "b"), EncodedFrame(2, "c")]),
        )
        self.store.write("abc123", StageKind.FRAMES, FrameSet(frames=[EncodedFrame(0, "z")]))

        frame_set = self.store.read("abc123", StageKind.FRAMES)
        self.assertEqual(frame_set.frames, [EncodedFrame(0, "z")])

    def test_read_missing_artifact_raises(self):
        with self.assertRaises(ArtifactNotFoundError):
            self.store.read("abc123", StageKind.AUDIO)

    def test_wrong_artifact_type_is_rejected(self):
        with self.assertRaises(TypeError):
            self.store.write("abc123", StageKind.AUDIO, Transcript(text="not audio"))

    def test_no_temporary_files_left_behind(self):
        self.store.write("abc123", StageKind.AUDIO, AudioTrack(data=b"x"))

        self.assertEqual([path.name for path in (self.root / "audio").iterdir()], ["abc123.mp3"])

    def test_locations(self):
        self.assertEqual(self.store.location("abc123", StageKind.AUDIO), "/audio/abc123.mp3")
        self.assertEqual(self.store.location("abc123", StageKind.FRAMES), "/frames/abc123")
        self.assertEqual(
            self.store.location("abc123", StageKind.TRANSCRIPT), "/transcripts/abc123.txt"
        )

    def test_path_traversal_is_rejected(self):
        with self.assertRaises(InvalidInputError):
            self.store.exists("../secrets", StageKind.AUDIO)

    def test_videos_are_isolated_from_each_other(self):
        self.store.write("first", StageKind.TRANSCRIPT, Transcript(text="one"))

        self.assertFalse(self.store.exists("second", StageKind.TRANSCRIPT))


class VideoLibraryTests(unittest.TestCase):
    def test_exists_and_location(self):
        with tempfile.TemporaryDirectory() as root:
            library = VideoLibrary(root)
            self.assertFalse(library.exists("abc123"))
            self.assertIsNone(library.location("abc123"))

            (Path(root) / "videos").mkdir()
            (Path(root) / "videos" / "abc123.mp4").write_bytes(b"mp4")

            self.assertTrue(library.exists("abc123"))
            self.assertEqual(library.location("abc123"), "/videos/abc123.mp4")
            self.assertEqual(library.path_for("abc123"), Path(root) / "videos" / "abc123.mp4")


class VideoIdTests(unittest.TestCase):
    def test_extract_from_source_urls(self):
        urls = [
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=42s",
            "https://youtu.be/dQw4w9WgXcQ?si=share",
            "https://www.youtube.com/embed/dQw4w9WgXcQ",
            "https://www.youtube.com/watch?feature=shared&v=dQw4w9WgXcQ",
        ]
        for url in urls:
            with self.subTest(url=url):
                self.assertEqual(extract_video_id(url), "dQw4w9WgXcQ")

    def test_extract_from_unrelated_url(self):
        self.assertIsNone(extract_video_id("https://example.com/video.mp4"))
        self.assertIsNone(extract_video_id(""))

    def test_validate(self):
        self.assertEqual(validate_video_id("dQw4w9WgXcQ"), "dQw4w9WgXcQ")
        for bad_value in [None, "", "../etc", "a b", "x" * 65]:
            with self.subTest(value=bad_value):
                with self.assertRaises(InvalidInputError):
                    validate_video_id(bad_value)

    def test_resolve_prefers_explicit_id(self):
        self.assertEqual(
            resolve_video_id("abc123", "https://youtu.be/dQw4w9WgXcQ"), "abc123"
        )
        self.assertEqual(resolve_video_id(source_url="https://youtu.be/dQw4w9WgXcQ"), "dQw4w9WgXcQ")

    def test_resolve_requires_something(self):
        with self.assertRaises(InvalidInputError):
            resolve_video_id()
        with self.assertRaises(InvalidInputError):
            resolve_video_id(source_url="https://example.com/nothing")


if __name__ == "__main__":
    unittest.main()
