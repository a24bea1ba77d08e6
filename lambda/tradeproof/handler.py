"""
Lambda entry point - orchestrates the analysis and recheck workflows.

Parses API Gateway events, coordinates contexts (validation, inference,
engine, storage), and formats HTTP responses. Errors are logged here and
nowhere else in the service.

No business logic lives here beyond request checks and response formatting.
"""

import json
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError

from tradeproof.validator import (
    decode_photo,
    validate_photo,
    is_quality_acceptable,
    get_quality_feedback,
    media_type_for,
)
from tradeproof.inference import analyze_photo, recheck_photo
from tradeproof.analysis import build_analysis, critical_count, violation_tuples
from tradeproof.recheck import reconcile, merge_recheck
from tradeproof.metrics import build_dashboard, compute_skill_scores, history_key, sort_newest_first
from tradeproof.credential import build_credential
from tradeproof.knowledge import clips_for_analysis, search_clips
from tradeproof.payloads import FindingViolation
from tradeproof.storage import (
    save_analysis,
    get_analysis,
    get_analyses,
    update_analysis,
    get_profile,
    get_skill_scores,
    save_skill_scores,
    store_photo,
)
from tradeproof.models import (
    Analysis,
    PhotoCheck,
    SkillScore,
    Violation,
    ValidationError,
    UpstreamParseError,
    ReconciliationMismatch,
    NotFoundError,
    InferenceError,
    StorageError,
    InternalError,
)
from tradeproof.config import DEFAULT_JURISDICTION, DEFAULT_USER_ID, LOG_LEVEL


logger = logging.getLogger("tradeproof.handler")
logger.setLevel(LOG_LEVEL)


# --- Lambda Entry Point ---

def lambda_handler(event: dict, context: Any) -> dict:
    """
    AWS Lambda handler for API Gateway HTTP API (v2).

    Routes:
    - POST /analyze
    - POST /recheck
    - GET /analyses/{analysis_id}
    - GET /analyses/{analysis_id}/clips
    - GET /users/{user_id}/dashboard
    - GET /users/{user_id}/credential
    - GET /knowledge

    Never raises exceptions - all errors converted to HTTP responses.
    """
    try:
        http_method = event["requestContext"]["http"]["method"]
        path = event["requestContext"]["http"]["path"]
    except (KeyError, TypeError):
        logger.error("Malformed event: missing requestContext.http")
        return _error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")

    for method, pattern, route in _ROUTES:
        match = pattern.search(path.rstrip("/"))
        if http_method == method and match:
            return _dispatch(route, event, match.groupdict())

    return _error_response(404, "NOT_FOUND", "Route not found")


def _dispatch(route: Callable[..., dict], event: dict, params: dict) -> dict:
    """Runs a route handler and maps the error taxonomy to HTTP responses."""
    try:
        return route(event, **params)

    except ValidationError as e:
        logger.warning("Rejected request: %s", e)
        return _error_response(400, "VALIDATION_ERROR", str(e))

    except NotFoundError as e:
        logger.info("Not found: %s", e)
        return _error_response(404, "NOT_FOUND", str(e))

    except UpstreamParseError:
        logger.exception("Inference response could not be decoded")
        return _error_response(502, "UPSTREAM_PARSE_ERROR", "AI response parsing failed. Please try again.")

    except ReconciliationMismatch:
        logger.exception("Recheck reconciliation mismatch")
        return _error_response(500, "RECONCILIATION_MISMATCH", "Recheck result did not match the original violations")

    except InferenceError:
        logger.exception("Inference call failed")
        return _error_response(500, "INFERENCE_ERROR", "Photo analysis failed")

    except StorageError:
        logger.exception("Storage operation failed")
        return _error_response(500, "STORAGE_ERROR", "Failed to read or write data")

    except InternalError as e:
        logger.exception("Internal error")
        return _error_response(500, "INTERNAL_ERROR", str(e))

    except Exception:
        logger.exception("Unexpected error")
        return _error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")


# --- Route Handlers ---

def _handle_analyze(event: dict) -> dict:
    """POST /analyze - validate photo(s), run inference, persist the analysis."""
    # 1. Parse request
    body = _parse_body(event)

    before_encoded = body.get("beforeImage")
    image_encoded = body.get("image") or body.get("afterImage")
    work_type = body.get("workType")
    user_description = body.get("userDescription")
    jurisdiction = body.get("jurisdiction") or DEFAULT_JURISDICTION
    user_id = body.get("userId") or DEFAULT_USER_ID

    if not image_encoded:
        field = "afterImage" if before_encoded else "image"
        raise ValidationError(f"Missing required field: {field}")
    if not work_type:
        raise ValidationError("Missing required field: workType")
    if not user_description:
        raise ValidationError("Missing required field: userDescription")

    # 2. Decode and check photos
    image, image_check = _checked_photo(image_encoded)
    before, before_check = (None, None)
    if before_encoded:
        before, before_check = _checked_photo(before_encoded)

    if not is_quality_acceptable(image_check):
        return _quality_error(image_check)
    if before_check is not None and not is_quality_acceptable(before_check):
        return _quality_error(before_check)

    # 3. Run inference
    findings = analyze_photo(
        image,
        media_type_for(image_check),
        work_type=work_type,
        user_description=user_description,
        jurisdiction=jurisdiction,
        before_image=before,
        before_media_type=media_type_for(before_check) if before_check else "image/jpeg",
    )

    # 4. Store photos and build the record
    photo_url = store_photo(user_id, image, media_type_for(image_check))
    before_url = store_photo(user_id, before, media_type_for(before_check)) if before is not None else None

    analysis = build_analysis(
        findings,
        user_id=user_id,
        work_type=work_type,
        jurisdiction=jurisdiction,
        photo_url=photo_url,
        user_description=user_description,
        before_photo_url=before_url,
    )

    # 5. Persist
    saved = save_analysis(analysis)

    # 6. Response
    return _success_response(200, {
        "id": saved.analysis_id,
        "timestamp": saved.created_at,
        "jurisdiction": saved.jurisdiction,
        "workType": saved.work_type,
        "mode": saved.mode.value,
        "description": findings.description,
        **_findings_view(saved),
    })


def _handle_recheck(event: dict) -> dict:
    """POST /recheck - reconcile a fixed photo against the original violations."""
    body = _parse_body(event)

    original_encoded = body.get("originalImage")
    fixed_encoded = body.get("fixedImage")
    analysis_id = body.get("analysisId")
    user_description = body.get("userDescription")

    if not original_encoded:
        raise ValidationError("Missing required field: originalImage")
    if not fixed_encoded:
        raise ValidationError("Missing required field: fixedImage")

    # Stored violations carry stable ids; request violations may not
    analysis: Analysis | None = None
    if analysis_id:
        analysis = get_analysis(analysis_id)
        if analysis is None:
            raise NotFoundError(f"No analysis found with ID: {analysis_id}")
        violations = list(analysis.violations)
        jurisdiction = body.get("jurisdiction") or analysis.jurisdiction
    else:
        violations = _parse_violations(body.get("originalViolations"))
        jurisdiction = body.get("jurisdiction") or DEFAULT_JURISDICTION

    if not violations:
        raise ValidationError("originalViolations array is empty. Nothing to re-check.")

    original, original_check = _checked_photo(original_encoded)
    fixed, fixed_check = _checked_photo(fixed_encoded)
    if not is_quality_acceptable(fixed_check):
        return _quality_error(fixed_check)

    payload = recheck_photo(
        original,
        media_type_for(original_check),
        fixed,
        media_type_for(fixed_check),
        violation_tuples(violations),
        jurisdiction=jurisdiction,
        user_description=user_description,
    )

    result = reconcile(violations, payload)

    response_data: dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "timestamp": result.checked_at,
        "jurisdiction": jurisdiction,
        "description": payload.description,
        **result.model_dump(mode="json"),
    }

    if analysis is not None:
        fixed_url = store_photo(analysis.user_id, fixed, media_type_for(fixed_check))
        updated = update_analysis(analysis.analysis_id, merge_recheck(analysis, result, fixed_url))
        response_data["analysis_id"] = updated.analysis_id
        response_data["revision_count"] = len(updated.revision_history)

    return _success_response(200, response_data)


def _handle_get_analysis(event: dict, analysis_id: str) -> dict:
    """GET /analyses/{analysis_id} - full analysis record."""
    analysis = get_analysis(analysis_id)
    if analysis is None:
        raise NotFoundError(f"No analysis found with ID: {analysis_id}")
    return _success_response(200, analysis.model_dump(mode="json"))


def _handle_get_clips(event: dict, analysis_id: str) -> dict:
    """GET /analyses/{analysis_id}/clips - expert clips relevant to an analysis."""
    analysis = get_analysis(analysis_id)
    if analysis is None:
        raise NotFoundError(f"No analysis found with ID: {analysis_id}")
    clips = clips_for_analysis(analysis)
    return _success_response(200, {
        "analysis_id": analysis_id,
        "clips": [c.model_dump(mode="json") for c in clips],
    })


def _handle_dashboard(event: dict, user_id: str) -> dict:
    """GET /users/{user_id}/dashboard - compliance trend and skill scores."""
    history = sort_newest_first(get_analyses(user_id))
    dashboard = build_dashboard(history, _skill_scores_for(user_id, history))
    return _success_response(200, dashboard.model_dump(mode="json"))


def _handle_credential(event: dict, user_id: str) -> dict:
    """GET /users/{user_id}/credential - shareable credential snapshot."""
    profile = get_profile(user_id)
    if profile is None:
        raise NotFoundError(f"No profile found for user: {user_id}")

    history = sort_newest_first(get_analyses(user_id))
    credential = build_credential(profile, history, _skill_scores_for(user_id, history))
    return _success_response(200, credential.model_dump(mode="json"))


def _handle_knowledge(event: dict) -> dict:
    """GET /knowledge?q=&taskType= - knowledge library search."""
    params = event.get("queryStringParameters") or {}
    clips = search_clips(params.get("q"), params.get("taskType"))
    return _success_response(200, {"clips": [c.model_dump(mode="json") for c in clips]})


_ROUTES: list[tuple[str, re.Pattern, Callable[..., dict]]] = [
    ("POST", re.compile(r"/analyze$"), _handle_analyze),
    ("POST", re.compile(r"/recheck$"), _handle_recheck),
    ("GET", re.compile(r"/analyses/(?P<analysis_id>[^/]+)/clips$"), _handle_get_clips),
    ("GET", re.compile(r"/analyses/(?P<analysis_id>[^/]+)$"), _handle_get_analysis),
    ("GET", re.compile(r"/users/(?P<user_id>[^/]+)/dashboard$"), _handle_dashboard),
    ("GET", re.compile(r"/users/(?P<user_id>[^/]+)/credential$"), _handle_credential),
    ("GET", re.compile(r"/knowledge$"), _handle_knowledge),
]


# --- Request Helpers ---

def _parse_body(event: dict) -> dict:
    try:
        body = json.loads(event.get("body") or "{}")
    except json.JSONDecodeError:
        raise ValidationError("Invalid request body: expected JSON")
    if not isinstance(body, dict):
        raise ValidationError("Invalid request body: expected a JSON object")
    return body


def _checked_photo(encoded: str) -> tuple[bytes, PhotoCheck]:
    """Decodes and validates one photo. Quality is judged by the caller."""
    if not isinstance(encoded, str):
        raise ValidationError("Image must be a base64-encoded string")
    image = decode_photo(encoded)
    check = validate_photo(image)
    if not check.is_valid:
        raise ValidationError(check.error_message or "Photo validation failed")
    return image, check


def _parse_violations(raw: Any) -> list[Violation]:
    """Request violations (snake_case tuples) into domain Violations."""
    if raw is None or not isinstance(raw, list):
        raise ValidationError("Missing or invalid required field: originalViolations (must be an array)")
    try:
        findings = [FindingViolation.model_validate(v) for v in raw]
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid originalViolations entry: {e.error_count()} error(s)")
    return [Violation(**f.model_dump()) for f in findings]


def _skill_scores_for(user_id: str, history: list[Analysis]) -> list[SkillScore]:
    """Cached skill scores for this exact history, otherwise recomputed and cached."""
    key = history_key(history)
    cached = get_skill_scores(user_id, key)
    if cached is not None:
        return cached
    return save_skill_scores(user_id, compute_skill_scores(history), key)


def _findings_view(analysis: Analysis) -> dict:
    data = analysis.model_dump(
        mode="json",
        include={
            "violations",
            "correct_items",
            "skills_demonstrated",
            "compliance_score",
            "is_compliant",
            "overall_assessment",
        },
    )
    data["critical_count"] = critical_count(analysis)
    return data


# --- Response Helpers ---

def _quality_error(check: PhotoCheck) -> dict:
    return _error_response(
        400,
        "QUALITY_TOO_LOW",
        "Photo quality insufficient for automated inspection",
        details={
            "quality_score": check.quality.overall,
            "quality_breakdown": {
                "sharpness": check.quality.sharpness,
                "brightness": check.quality.brightness,
                "contrast": check.quality.contrast,
            },
            "issues": check.quality.issues,
        },
        feedback=get_quality_feedback(check),
    )


def _success_response(status_code: int, data: dict) -> dict:
    return {
        "statusCode": status_code,
        "headers": {
            "Content-Type": "application/json",
            "Access-Control-Allow-Origin": "*",
        },
        "body": json.dumps(data),
    }


def _error_response(
    status_code: int,
    code: str,
    message: str,
    details: dict | str | None = None,
    feedback: str | None = None,
) -> dict:
    error_body: dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if details is not None:
        error_body["error"]["details"] = details

    if feedback is not None:
        error_body["error"]["feedback"] = feedback

    return {
        "statusCode": status_code,
        "headers": {
            "Content-Type": "application/json",
            "Access-Control-Allow-Origin": "*",
        },
        "body": json.dumps(error_body),
    }
