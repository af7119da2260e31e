import json
import logging
from datetime import datetime

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt

from credentials import mask_api_key
from pipeline_errors import InvalidInputError, PipelineError
from video_ids import resolve_video_id

from .credentials import DatabaseCredentialProvider
from .models import ServiceCredential
from .services import get_summary_pipeline

logger = logging.getLogger(__name__)


def _json_body(request):
    """Parse a JSON object request body."""
    try:
        payload = json.loads(request.body or b"{}")
    except (ValueError, UnicodeDecodeError):
        raise InvalidInputError("Invalid JSON data")

    if not isinstance(payload, dict):
        raise InvalidInputError("Request body must be a JSON object")
    return payload


def _error_response(pipeline_error):
    return JsonResponse(pipeline_error.to_dict(), status=pipeline_error.http_status)


@csrf_exempt
def api_summarize(request):
    """
    Summary pipeline endpoint.

    POST {"videoId": ...} or {"url": ...} runs the pipeline for a downloaded
    video. GET ?videoId=... reports which artifacts are cached without doing
    any work.
    """
    if request.method == "GET":
        return _summary_status(request)

    if request.method != "POST":
        return JsonResponse({"error": "Method not allowed"}, status=405)

    try:
        payload = _json_body(request)
        video_id = resolve_video_id(payload.get("videoId"), payload.get("url"))

        logger.info(f"Summary requested for {video_id}")
        result = get_summary_pipeline().run(video_id)
        return JsonResponse(result.to_dict())

    except PipelineError as pipeline_error:
        logger.warning(f"Summary failed ({pipeline_error.kind}): {pipeline_error.message}")
        return _error_response(pipeline_error)
    except Exception as e:
        logger.error(f"Error summarizing video: {e}")
        return JsonResponse({"error": str(e), "kind": "InternalError"}, status=500)


def _summary_status(request):
    try:
        video_id = resolve_video_id(request.GET.get("videoId"))
        return JsonResponse(get_summary_pipeline().status(video_id).to_dict())
    except PipelineError as pipeline_error:
        return _error_response(pipeline_error)


@csrf_exempt
def api_keys(request):
    """Read (masked), store, or clear the OpenAI API key."""
    credential_provider = DatabaseCredentialProvider()

    try:
        if request.method == "GET":
            api_key = credential_provider.get()
            return JsonResponse(
                {"configured": api_key is not None, "openaiApiKey": mask_api_key(api_key)}
            )

        elif request.method == "POST":
            payload = _json_body(request)
            api_key = payload.get("openaiApiKey")
            if not isinstance(api_key, str) or not api_key.strip():
                raise InvalidInputError("openaiApiKey is required")

            credential_provider.set(api_key)
            return JsonResponse({"success": True})

        elif request.method == "DELETE":
            credential_provider.clear()
            return JsonResponse({"success": True})

        return JsonResponse({"error": "Method not allowed"}, status=405)

    except PipelineError as pipeline_error:
        return _error_response(pipeline_error)
    except Exception as e:
        logger.error(f"Error updating API key: {e}")
        return JsonResponse({"error": "Failed to update API key"}, status=500)


def health_check(request):
    """Health check endpoint for container monitoring."""
    try:
        credential_configured = ServiceCredential.objects.exists()

        return JsonResponse(
            {
                "status": "healthy",
                "timestamp": datetime.now().isoformat(),
                "database": "connected",
                "credential": "configured" if credential_configured else "missing",
            }
        )

    except Exception as e:
        return JsonResponse(
            {
                "status": "unhealthy",
                "timestamp": datetime.now().isoformat(),
                "error": str(e),
            },
            status=503,
        )
