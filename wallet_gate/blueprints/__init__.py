"""HTTP blueprints and the helpers they share."""

from typing import Any, Dict

from flask import current_app, request

from wallet_gate.errors import ValidationError


def get_services():
    """Return the ``GateServices`` bound to the current app."""
    return current_app.extensions["wallet_gate"]


def request_payload() -> Dict[str, Any]:
    """Merge query-string parameters with a JSON body; the body wins."""
    payload: Dict[str, Any] = dict(request.args.items())
    if request.data or request.is_json:
        body = request.get_json(silent=True)
        if body is None and request.data:
            raise ValidationError("Request body must be JSON.")
        if body is not None and not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object.")
        payload.update(body or {})
    return payload


def require_str(payload: Dict[str, Any], field: str, message: str) -> str:
    value = payload.get(field)
    if value is None or not str(value).strip():
        raise ValidationError(message)
    return str(value).strip()


def optional_str(payload: Dict[str, Any], field: str):
    value = payload.get(field)
    if value is None or not str(value).strip():
        return None
    return str(value).strip()
