from django.apps import AppConfig


class VideoSummariesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "video_summaries"
    verbose_name = "Video Summaries"
