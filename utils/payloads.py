"""Bind JSON bodies to WTForms forms and shape paginated responses."""
from typing import Any, Dict, Iterable, Optional, Tuple

from flask import current_app, request
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict

from utils.errors import ValidationError

DATETIME_FORMATS = [
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%d",
]

TRUE_VALUES = {"1", "true", "yes", "on"}


class ApiForm(FlaskForm):
    """Base form for JSON bodies; bearer auth means no CSRF token."""

    class Meta:
        csrf = False


def json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def flatten_payload(payload: Any, prefix: str = "", out: Optional[MultiDict] = None) -> MultiDict:
    """Flatten nested JSON into the dashed names WTForms expects (``answers-0-question``)."""
    out = out if out is not None else MultiDict()
    if isinstance(payload, dict):
        for key, value in payload.items():
            flatten_payload(value, f"{prefix}-{key}" if prefix else str(key), out)
    elif isinstance(payload, (list, tuple)):
        for index, value in enumerate(payload):
            flatten_payload(value, f"{prefix}-{index}", out)
    elif payload is None:
        return out
    elif isinstance(payload, bool):
        out.add(prefix, "true" if payload else "false")
    else:
        out.add(prefix, str(payload))
    return out


def _clean(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    if isinstance(value, dict):
        return {k: _clean(v) for k, v in value.items() if k != "csrf_token"}
    if isinstance(value, list):
        return [_clean(v) for v in value]
    return value


def _first_error(errors: Any) -> Optional[str]:
    if isinstance(errors, dict):
        for key, value in errors.items():
            message = _first_error(value)
            if message:
                return f"{key}: {message}"
    elif isinstance(errors, (list, tuple)):
        for value in errors:
            message = _first_error(value)
            if message:
                return message
    elif errors:
        return str(errors)
    return None


def bind_form(form_cls, payload: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Validate ``payload`` with ``form_cls`` and return only the supplied fields.

    With ``partial`` set, validators are skipped for fields the client did not
    send so that updates never touch omitted columns.
    """
    form = form_cls(formdata=flatten_payload(payload), meta={"csrf": False})
    if partial:
        for name, field in form._fields.items():
            if name not in payload:
                field.validators = ()
    if not form.validate():
        raise ValidationError(_first_error(form.errors) or "Invalid request")

    cleaned: Dict[str, Any] = {}
    for name, field in form._fields.items():
        if name not in payload:
            continue
        cleaned[name] = None if payload[name] is None else _clean(field.data)
    return cleaned


def apply_fields(instance, data: Dict[str, Any], allowed: Iterable[str]) -> None:
    for key in allowed:
        if key in data:
            setattr(instance, key, data[key])


def arg_flag(name: str) -> Optional[bool]:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return raw.strip().lower() in TRUE_VALUES


def page_args(default_limit: Optional[int] = None) -> Tuple[int, int]:
    max_limit = int(current_app.config.get("MAX_PAGE_SIZE", 100))
    default_limit = default_limit or int(current_app.config.get("DEFAULT_PAGE_SIZE", 20))
    page = request.args.get("page", 1, type=int) or 1
    limit = request.args.get("limit", default_limit, type=int) or default_limit
    return max(page, 1), min(max(limit, 1), max_limit)


def paginate(query, items_key: str, serializer, default_limit: Optional[int] = None) -> Dict[str, Any]:
    page, limit = page_args(default_limit)
    pagination = query.paginate(page=page, per_page=limit, error_out=False)
    return {
        items_key: [serializer(item) for item in pagination.items],
        "total_pages": pagination.pages,
        "current_page": page,
        "total": pagination.total,
    }
