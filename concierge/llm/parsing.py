"""Parse and validate the model's JSON reply."""

from __future__ import annotations

import json
import logging
import re

from pydantic import ValidationError

from concierge.errors import UpstreamError
from concierge.models import ConciergeResponse

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)
_OPTIONAL_FIELDS = ("quick_replies", "actions", "citations", "handoff")


def _extract_json_text(text: str) -> str:
    """Strip a surrounding markdown fence, or cut to the outermost braces."""
    stripped = text.strip()
    fenced = _FENCE.match(stripped)
    if fenced:
        return fenced.group(1)
    start, end = stripped.find("{"), stripped.rfind("}")
    if start != -1 and end > start:
        return stripped[start : end + 1]
    return stripped


def parse_response(text: str) -> ConciergeResponse:
    """Validate model output against the ``ConciergeResponse`` schema.

    Any model-supplied ``trust`` is discarded; the trust policy owns it.

    Raises:
        UpstreamError: empty output, invalid JSON, or a schema mismatch.
    """
    if not text.strip():
        raise UpstreamError("Model returned an empty reply")

    try:
        payload = json.loads(_extract_json_text(text))
    except json.JSONDecodeError as exc:
        logger.warning("Model reply is not JSON: %.200s", text)
        raise UpstreamError("Model reply is not valid JSON") from exc

    if not isinstance(payload, dict):
        raise UpstreamError("Model reply is not a JSON object")

    payload.pop("trust", None)
    # null means "not given"; the model defaults apply
    for key in _OPTIONAL_FIELDS:
        if key in payload and payload[key] is None:
            del payload[key]

    try:
        return ConciergeResponse.model_validate(payload)
    except ValidationError as exc:
        logger.warning("Model reply failed schema validation: %s", exc)
        raise UpstreamError("Model reply does not match the response schema") from exc
