import json

from django.core.management.base import BaseCommand, CommandError

from credentials import mask_api_key
from pipeline_errors import PipelineError
from video_ids import resolve_video_id
from video_summaries.credentials import DatabaseCredentialProvider
from video_summaries.services import get_summary_pipeline


class Command(BaseCommand):
    help = "Summarize downloaded videos and manage the summary API key"

    def add_arguments(self, parser):
        subparsers = parser.add_subparsers(dest="command", help="Available commands")

        # Status command
        status_parser = subparsers.add_parser(
            "status", help="Show cached artifacts for a video"
        )
        status_parser.add_argument("video", help="Video id or source URL")

        # Run command
        run_parser = subparsers.add_parser("run", help="Summarize a downloaded video")
        run_parser.add_argument("video", help="Video id or source URL")
        run_parser.add_argument("--output", help="Save the result as JSON to this file")

        # Key commands
        set_key_parser = subparsers.add_parser("set-key", help="Store the OpenAI API key")
        set_key_parser.add_argument("api_key", help="OpenAI API key")
        subparsers.add_parser("clear-key", help="Remove the stored OpenAI API key")
        subparsers.add_parser("show-key", help="Show the stored OpenAI API key (masked)")

    def handle(self, *args, **options):
        command = options.get("command")

        if command == "status":
            self.handle_status(options)
        elif command == "run":
            self.handle_run(options)
        elif command == "set-key":
            self.handle_set_key(options)
        elif command == "clear-key":
            self.handle_clear_key(options)
        elif command == "show-key":
            self.handle_show_key(options)
        else:
            raise CommandError(
                "Specify a command: status, run, set-key, clear-key or show-key"
            )

    @staticmethod
    def _resolve_video(value):
        if "://" in value or "/" in value:
            return resolve_video_id(source_url=value)
        return resolve_video_id(video_id=value)

    def handle_status(self, options):
        """Show what is already cached for a video."""
        try:
            video_id = self._resolve_video(options["video"])
            status = get_summary_pipeline().status(video_id)
        except PipelineError as pipeline_error:
            raise CommandError(f"{pipeline_error.kind}: {pipeline_error.message}")

        def mark(flag):
            return "✅" if flag else "❌"

        self.stdout.write(f"\n🎬 {status.video_id}")
        self.stdout.write("=" * 50)
        self.stdout.write(f"   Source video: {mark(status.video_exists)}")
        self.stdout.write(
            f"   Audio:        {mark(status.cache_flags.audio)} {status.audio_location or ''}"
        )
        self.stdout.write(
            f"   Transcript:   {mark(status.cache_flags.transcript)} {status.transcript_location or ''}"
        )
        self.stdout.write(
            f"   Frames:       {mark(status.cache_flags.frames)} {status.frames_location or ''}"
        )

    def handle_run(self, options):
        """Run the summary pipeline for a video."""
        try:
            video_id = self._resolve_video(options["video"])
            self.stdout.write(f"⚙️  Summarizing {video_id}...")
            result = get_summary_pipeline().run(video_id)
        except PipelineError as pipeline_error:
            raise CommandError(f"{pipeline_error.kind}: {pipeline_error.message}")

        result_data = result.to_dict()
        cached_stages = [stage for stage, cached in result_data["cacheFlags"].items() if cached]

        self.stdout.write(self.style.SUCCESS(f"✅ Summary ready ({result.frame_count} frames)"))
        self.stdout.write(f"   Cached stages: {', '.join(cached_stages) or 'none'}")
        self.stdout.write("\n" + result.final_summary)

        if options.get("output"):
            with open(options["output"], "w") as output_file:
                json.dump(result_data, output_file, indent=2)
            self.stdout.write(f"\nResult saved to: {options['output']}")

    def handle_set_key(self, options):
        """Store the API key."""
        try:
            DatabaseCredentialProvider().set(options["api_key"])
        except ValueError as e:
            raise CommandError(str(e))
        self.stdout.write(self.style.SUCCESS("✅ API key saved"))

    def handle_clear_key(self, options):
        """Remove the API key."""
        DatabaseCredentialProvider().clear()
        self.stdout.write(self.style.SUCCESS("✅ API key cleared"))

    def handle_show_key(self, options):
        """Show the stored API key, masked."""
        api_key = DatabaseCredentialProvider().get()
        if api_key:
            self.stdout.write(f"🔑 {mask_api_key(api_key)}")
        else:
            self.stdout.write("No API key configured.")
