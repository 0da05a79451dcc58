"""
ChurchDesk Requisition Platform
Blueprint helpers.
"""

from flask import request

from churchdesk.core.exceptions import ValidationError


def json_body():
    """The request body as a dict, or None when it is missing or not a JSON object."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


def expected_version(data: dict):
    """Optional optimistic-concurrency token sent as ``version``."""
    raw = data.get("version")
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValidationError("version must be an integer", details={"version": "invalid"})
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValidationError("version must be an integer", details={"version": "invalid"}) from None


def int_arg(name: str):
    """Optional integer query parameter."""
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", details={name: "invalid"}) from None
