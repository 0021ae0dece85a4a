import re
from typing import Mapping

from icompress.core.errors import ValidationError
from icompress.models import Action, TransformSpec

DEFAULT_ACTION = Action.COMPRESS
DEFAULT_TRIM_START = 0.0
DEFAULT_TRIM_DURATION = 10.0

_TIMESTAMP_RE = re.compile(r"^(?:(?:(\d+):)?(\d{1,2}):)?(\d+(?:\.\d+)?)$")


def parse_time(value: str) -> float:
    """
    Parse an FFmpeg-style time quantity into seconds.

    Accepts plain seconds ("5", "2.5") or "[[HH:]MM:]SS[.fff]" timestamps.
    Raises ValueError on anything else, including negative values.
    """
    match = _TIMESTAMP_RE.match(value.strip())
    if not match:
        raise ValueError(f"not a time quantity: {value!r}")
    hours, minutes, seconds = match.groups()
    if minutes is not None and float(seconds) >= 60:
        raise ValueError(f"seconds out of range: {value!r}")
    return int(hours or 0) * 3600 + int(minutes or 0) * 60 + float(seconds)


def _trim_param(params: Mapping[str, str | None], name: str, default: float, lenient: bool) -> float:
    raw = params.get(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        value = parse_time(str(raw))
        if name == "duration" and value <= 0:
            raise ValueError("duration must be positive")
    except ValueError:
        if lenient:
            return default
        raise ValidationError(f"Invalid trim parameter '{name}': {raw}")
    return value


def resolve(
    action_name: str | None,
    params: Mapping[str, str | None] | None = None,
    lenient: bool = False,
) -> TransformSpec:
    """Map a requested action and its query parameters to a TransformSpec."""
    params = params or {}
    name = (action_name or "").strip().lower()
    if not name:
        return TransformSpec(action=DEFAULT_ACTION)

    try:
        action = Action(name)
    except ValueError:
        raise ValidationError(f"Unsupported action: {action_name}")

    if action != Action.TRIM:
        return TransformSpec(action=action)

    return TransformSpec(
        action=action,
        start=_trim_param(params, "start", DEFAULT_TRIM_START, lenient),
        duration=_trim_param(params, "duration", DEFAULT_TRIM_DURATION, lenient),
    )
