"""
AI assistant backed by the Gemini generateContent REST endpoint.

One call: prompt text in, generated text out. Every failure surfaces as
AssistantUnavailableError carrying a user-facing category message.
"""
import logging

import requests
from django.conf import settings

from .exceptions import AssistantUnavailableError, InvalidInputError
from .models import MAX_CHAT_MESSAGE_LENGTH

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """You are a helpful AI assistant for StackIt, a Q&A platform.
A user has asked: "{message}"

Please provide a helpful, accurate, and informative response. Keep your answer concise but comprehensive.
If the question is about programming, provide code examples when relevant.
If the question is general knowledge, provide factual information.
Always be polite and professional in your response."""

EMPTY_REPLY = "I'm sorry, I couldn't generate a response at the moment. Please try again."

CONFIGURATION_ERROR = "API key configuration issue. Please check your Gemini API key."
QUOTA_ERROR = "API quota exceeded. Please try again later."
NETWORK_ERROR = "Network connection issue. Please check your internet connection."
GENERIC_ERROR = "AI service temporarily unavailable. Please try again in a few moments."


def validate_message(message) -> str:
    if not message or not isinstance(message, str):
        raise InvalidInputError('Message is required')
    if len(message) > MAX_CHAT_MESSAGE_LENGTH:
        raise InvalidInputError(
            f"Message too long. Please keep it under {MAX_CHAT_MESSAGE_LENGTH} characters."
        )
    return message


def _extract_text(payload: dict) -> str:
    candidates = payload.get('candidates') or []
    if not candidates:
        return ''
    parts = (candidates[0].get('content') or {}).get('parts') or []
    return ''.join(part.get('text', '') for part in parts)


def _error_for_status(status_code: int) -> str:
    if status_code in (401, 403):
        return CONFIGURATION_ERROR
    if status_code == 429:
        return QUOTA_ERROR
    return GENERIC_ERROR


def generate_reply(message: str) -> str:
    """
    Ask the model to answer `message`.

    Raises:
        InvalidInputError: empty or over-long message
        AssistantUnavailableError: missing key, quota, network or any other
            upstream failure
    """
    message = validate_message(message)

    api_key = settings.GEMINI_API_KEY
    if not api_key:
        logger.error("Gemini API key is not configured")
        raise AssistantUnavailableError(CONFIGURATION_ERROR)

    url = settings.GEMINI_API_URL.format(model=settings.GEMINI_MODEL)
    body = {
        'contents': [
            {'parts': [{'text': PROMPT_TEMPLATE.format(message=message)}]}
        ]
    }
    logger.info(f"Generating AI response for: {message[:100]}")

    try:
        response = requests.post(
            url,
            json=body,
            headers={'x-goog-api-key': api_key},
            timeout=settings.GEMINI_TIMEOUT,
        )
        response.raise_for_status()
        payload = response.json()
    except (requests.ConnectionError, requests.Timeout) as exc:
        logger.error(f"Gemini network failure: {exc}")
        raise AssistantUnavailableError(NETWORK_ERROR) from exc
    except requests.HTTPError as exc:
        status_code = exc.response.status_code if exc.response is not None else 0
        logger.error(f"Gemini returned HTTP {status_code}: {exc}")
        raise AssistantUnavailableError(_error_for_status(status_code)) from exc
    except (requests.RequestException, ValueError) as exc:
        logger.error(f"Gemini request failed: {exc}")
        raise AssistantUnavailableError(GENERIC_ERROR) from exc

    text = _extract_text(payload)
    if not text:
        logger.error("Empty response from Gemini API")
        return EMPTY_REPLY
    return text
