"""
Vision model inference - photo findings and recheck reconciliation.

Handles client lifecycle, message assembly, and response decoding.
Raw model text never leaves this module; callers get decoded payloads.
"""

import base64

from openai import OpenAI

from tradeproof.models import InferenceError, UpstreamParseError
from tradeproof.payloads import (
    FindingsPayload,
    ReconciliationPayload,
    decode_findings,
    decode_reconciliation,
)
from tradeproof.prompts import build_analysis_prompt, build_recheck_prompt
from tradeproof.config import (
    INFERENCE_MODEL,
    INFERENCE_MAX_TOKENS,
    INFERENCE_TIMEOUT_S,
    DEFAULT_TRADE,
)


# --- Global client cache ---
# Lambda containers persist between invocations.

_client: OpenAI | None = None


# --- Public API ---

def analyze_photo(
    image: bytes,
    media_type: str,
    *,
    work_type: str,
    user_description: str,
    jurisdiction: str,
    trade: str = DEFAULT_TRADE,
    before_image: bytes | None = None,
    before_media_type: str = "image/jpeg",
) -> FindingsPayload:
    """
    Runs a compliance assessment on one photo, or a before/after pair.

    Raises:
        InferenceError: If the model call fails.
        UpstreamParseError: If the response does not match the findings schema.
    """
    system_prompt = build_analysis_prompt(
        jurisdiction, trade, work_type, user_description, before_after=before_image is not None
    )

    content: list[dict] = []
    if before_image is not None:
        content.append(_text_part("Here is the BEFORE photo (before work was performed):"))
        content.append(_image_part(before_image, before_media_type))
        content.append(_text_part("Here is the AFTER photo (after work was completed):"))
    content.append(_image_part(image, media_type))
    content.append(_text_part(
        f"Work type: {work_type}\n\nDescription from the worker: {user_description}\n\n"
        "Analyze the work for code compliance and respond with the JSON format in your instructions."
    ))

    return decode_findings(_complete(system_prompt, content))


def recheck_photo(
    original_image: bytes,
    original_media_type: str,
    fixed_image: bytes,
    fixed_media_type: str,
    original_violations: list[dict],
    *,
    jurisdiction: str,
    user_description: str | None = None,
) -> ReconciliationPayload:
    """
    Compares original and fixed photos against the original violation list.

    Raises:
        InferenceError: If the model call fails.
        UpstreamParseError: If the response does not match the reconciliation schema.
    """
    system_prompt = build_recheck_prompt(jurisdiction, original_violations, user_description)

    content = [
        _text_part("Here is the ORIGINAL photo (before fixes):"),
        _image_part(original_image, original_media_type),
        _text_part("Here is the FIXED photo (after fixes):"),
        _image_part(fixed_image, fixed_media_type),
        _text_part(
            "Evaluate each original violation, check for new issues, and respond "
            "with the JSON format in your instructions."
        ),
    ]

    return decode_reconciliation(_complete(system_prompt, content))


def clear_client_cache() -> None:
    """Clears cached client. Used in testing only."""
    global _client
    _client = None


# --- Internal ---

def _get_client() -> OpenAI:
    """Lazily created client, reused across invocations."""
    global _client

    if _client is not None:
        return _client

    try:
        _client = OpenAI(timeout=INFERENCE_TIMEOUT_S)
        return _client
    except Exception as e:
        raise InferenceError(f"Failed to create inference client: {e}")


def _complete(system_prompt: str, content: list[dict]) -> str:
    try:
        response = _get_client().chat.completions.create(
            model=INFERENCE_MODEL,
            max_tokens=INFERENCE_MAX_TOKENS,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": content},
            ],
        )
    except InferenceError:
        raise
    except Exception as e:
        raise InferenceError(f"Inference failed: {e}")

    text = response.choices[0].message.content if response.choices else None
    if not text:
        raise UpstreamParseError("No text response received from inference service")
    return text


def _text_part(text: str) -> dict:
    return {"type": "text", "text": text}


def _image_part(image: bytes, media_type: str) -> dict:
    encoded = base64.b64encode(image).decode()
    return {"type": "image_url", "image_url": {"url": f"data:{media_type};base64,{encoded}"}}
