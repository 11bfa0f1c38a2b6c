import logging
import math
import re
import time

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from errors import NotoError
from settings import Settings, load_settings


LOGGER = logging.getLogger(__name__)


class AIServiceError(NotoError):
    def __init__(
        self,
        message: str,
        *,
        status_code: int = 502,
        error_code: str = "AI_SERVICE_ERROR",
        retry_after_seconds: int | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.retry_after_seconds = retry_after_seconds


def _extract_status_code(exc: Exception) -> int:
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int):
        return status_code

    code = getattr(exc, "code", None)
    if isinstance(code, int):
        return code

    match = re.search(r"^\s*(\d{3})\b", str(exc))
    if match:
        return int(match.group(1))
    return 502


def _extract_retry_after_seconds(error_text: str) -> int | None:
    patterns = [
        r"retry in\s+([0-9]+(?:\.[0-9]+)?)s",
        r"retryDelay[\"']?\s*[:=]\s*[\"']([0-9]+(?:\.[0-9]+)?)s",
    ]
    for pattern in patterns:
        match = re.search(pattern, error_text, re.IGNORECASE)
        if not match:
            continue
        try:
            return max(1, int(math.ceil(float(match.group(1)))))
        except (TypeError, ValueError):
            continue
    return None


def _map_genai_error(exc: Exception, *, model_name: str) -> AIServiceError:
    status_code = _extract_status_code(exc)
    raw_error = str(exc)
    retry_after_seconds = _extract_retry_after_seconds(raw_error)

    if status_code == 404:
        return AIServiceError(
            f"Configured Gemini model '{model_name}' was not found. Update GEMINI_MODEL_NAME to a supported model.",
            status_code=502,
            error_code="AI_MODEL_NOT_FOUND",
        )

    if status_code == 429:
        return AIServiceError(
            f"Gemini quota or rate limit exceeded for model '{model_name}'. Retry later or use a billed Gemini project.",
            status_code=429,
            error_code="AI_RATE_LIMITED",
            retry_after_seconds=retry_after_seconds,
        )

    if status_code == 503:
        return AIServiceError(
            f"Gemini model '{model_name}' is temporarily unavailable due to high demand. Retry shortly.",
            status_code=503,
            error_code="AI_TEMPORARILY_UNAVAILABLE",
            retry_after_seconds=retry_after_seconds,
        )

    if status_code >= 500:
        return AIServiceError(
            "Gemini service returned an upstream error. Retry shortly.",
            status_code=502,
            error_code="AI_UPSTREAM_ERROR",
            retry_after_seconds=retry_after_seconds,
        )

    return AIServiceError(
        "Gemini request failed. Verify API key, model, and prompt, then retry.",
        status_code=502,
        error_code="AI_REQUEST_FAILED",
        retry_after_seconds=retry_after_seconds,
    )


def _collect_stream(client, model_name: str, contents, config) -> str:
    response_text = ""
    for chunk in client.models.generate_content_stream(
        model=model_name,
        contents=contents,
        config=config,
    ):
        if chunk.text:
            response_text += chunk.text
    return response_text


def _generate_once(client, model_name: str, contents, config) -> str:
    """Streamed generation, falling back to a single call when the stream breaks."""
    try:
        return _collect_stream(client, model_name, contents, config)
    except genai_errors.APIError:
        raise
    except Exception as stream_exc:
        LOGGER.warning("Gemini stream failed (%s); retrying without streaming.", stream_exc)
        response = client.models.generate_content(
            model=model_name,
            contents=contents,
            config=config,
        )
        return str(getattr(response, "text", "") or "")


def generate_with_instruction(
    prompt: str,
    system_instruction: str,
    *,
    settings: Settings | None = None,
    response_mime_type: str = "application/json",
) -> str:
    settings = settings or load_settings()
    api_key = settings.google_api_key
    if not api_key:
        raise AIServiceError(
            "GOOGLE_API_KEY is not configured",
            status_code=500,
            error_code="AI_KEY_MISSING",
        )
    model_name = settings.gemini_model_name
    max_retries = settings.gemini_max_retries
    retry_base_seconds = settings.gemini_retry_base_seconds

    client = genai.Client(
        api_key=api_key,
        http_options=types.HttpOptions(timeout=int(settings.http_timeout_seconds * 1000)),
    )

    contents = [
        types.Content(
            role="user",
            parts=[types.Part.from_text(text=prompt)],
        )
    ]

    config = types.GenerateContentConfig(
        response_mime_type=response_mime_type,
        system_instruction=[types.Part.from_text(text=system_instruction)],
    )

    response_text = ""
    for attempt in range(max_retries + 1):
        try:
            response_text = _generate_once(client, model_name, contents, config)
            break
        except genai_errors.APIError as exc:
            mapped_error = _map_genai_error(exc, model_name=model_name)
            retryable = mapped_error.status_code in {429, 503}
            if retryable and attempt < max_retries:
                computed_retry = int(math.ceil(retry_base_seconds * (2**attempt)))
                retry_after = mapped_error.retry_after_seconds or computed_retry
                retry_after = max(1, min(retry_after, 10))
                LOGGER.warning(
                    "Gemini request failed for model %s (%s). Retrying in %ss (attempt %s/%s).",
                    model_name,
                    mapped_error.error_code,
                    retry_after,
                    attempt + 1,
                    max_retries,
                )
                time.sleep(retry_after)
                continue
            raise mapped_error from exc
        except Exception as exc:
            raise AIServiceError(
                "Unexpected Gemini integration failure.",
                status_code=502,
                error_code="AI_UNEXPECTED_ERROR",
            ) from exc

    if not response_text.strip():
        raise AIServiceError(
            "Gemini returned an empty response.",
            status_code=502,
            error_code="AI_EMPTY_RESPONSE",
        )

    return response_text
