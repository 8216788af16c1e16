"""
Normalization between stored lesson documents and Lesson values.

Documents in the lessons collection come in two shapes: older ones keep
student/coach/rink at the top level, newer ones nest them under
`extendedProps` (the calendar widget's name for custom event data). Timestamps
may be native datetimes, ISO strings, epoch numbers or store timestamp
objects. `normalize_lesson` accepts all of these and never raises, so one
malformed document can't take down the whole schedule.

`to_document` is the inverse used on every write. It always produces the
nested shape, and normalizing its output gives back an equal lesson.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from .models import (
    DEFAULT_COACH,
    DEFAULT_DURATION,
    DEFAULT_RINK,
    Lesson,
    build_title,
    coach_color,
)

logger = logging.getLogger(__name__)

_LEADING_THE = re.compile(r"^\s*the\s+", re.IGNORECASE)

# Epoch numbers above this are taken to be milliseconds (JavaScript style)
_EPOCH_MILLIS_THRESHOLD = 100_000_000_000


def strip_rink_prefix(rink: str) -> str:
    """
    Remove a leading "The " from a rink name.

    "the Den", "THE  Den" and "Den" all become "Den".
    """
    if not isinstance(rink, str):
        return rink
    return _LEADING_THE.sub("", rink).strip()


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_datetime(value: Any) -> Optional[datetime]:
    """
    Convert a stored timestamp into an aware UTC datetime.

    Returns None when the value is missing or can't be interpreted.
    """
    if value is None or isinstance(value, bool):
        return None

    try:
        if isinstance(value, datetime):
            return _as_utc(value)

        # Timestamp objects from the hosted document store export
        for method in ("to_datetime", "toDate"):
            converter = getattr(value, method, None)
            if callable(converter):
                return to_datetime(converter())

        if isinstance(value, Mapping):
            seconds = _first_present(value.get("seconds"), value.get("_seconds"))
            if seconds is None:
                return None
            nanos = _first_present(value.get("nanoseconds"), value.get("_nanoseconds"), 0)
            return datetime.fromtimestamp(float(seconds) + float(nanos) / 1e9, tz=timezone.utc)

        if isinstance(value, (int, float)):
            seconds = float(value)
            if abs(seconds) > _EPOCH_MILLIS_THRESHOLD:
                seconds /= 1000.0
            return datetime.fromtimestamp(seconds, tz=timezone.utc)

        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            return _as_utc(datetime.fromisoformat(text))

    except (ValueError, TypeError, OverflowError, OSError) as e:
        logger.debug(
            "Unparseable timestamp",
            extra={"value": repr(value)[:100], "error": str(e)}
        )
        return None

    return None


def normalize_lesson(
    record_id: Optional[str],
    data: Optional[Mapping[str, Any]],
    now: Optional[datetime] = None,
) -> Lesson:
    """
    Build a canonical Lesson from a raw stored document.

    Rules, in order:
    1. student/coach/rink come from `extendedProps` when present, otherwise
       the top level. Coach defaults to Silvia and rink to Den.
    2. A leading "The " is stripped from the rink.
    3. start/end become aware UTC datetimes. A missing start is `now`, a
       missing end is start + 30 minutes.
    4. Title and color are derived from the resolved fields; a stored title
       is ignored.
    """
    data = data or {}
    props = data.get("extendedProps")
    if not isinstance(props, Mapping):
        props = {}

    student = _first_present(props.get("student"), data.get("student"), "")
    coach = _first_present(props.get("coach"), data.get("coach"), DEFAULT_COACH)
    rink = _first_present(props.get("rink"), data.get("rink"), DEFAULT_RINK)

    student = str(student).strip()
    coach = str(coach).strip()
    rink = strip_rink_prefix(str(rink))

    start = to_datetime(data.get("start"))
    if start is None:
        start = _as_utc(now) if now is not None else datetime.now(timezone.utc)

    end = to_datetime(data.get("end"))
    if end is None:
        end = start + DEFAULT_DURATION

    return Lesson(
        id=str(record_id) if record_id is not None else None,
        student=student,
        coach=coach,
        rink=rink,
        start=start,
        end=end,
    )


def to_document(lesson: Lesson) -> dict[str, Any]:
    """
    Build the full stored document for a lesson.

    Every write replaces the whole document, so the derived title is
    recomputed here and the rink is normalized once more in case the
    caller built the lesson by hand.
    """
    rink = strip_rink_prefix(lesson.rink)
    return {
        "title": build_title(lesson.student, lesson.coach, rink),
        "start": _as_utc(lesson.start).isoformat(),
        "end": _as_utc(lesson.end).isoformat(),
        "extendedProps": {
            "student": lesson.student,
            "coach": lesson.coach,
            "rink": rink,
        },
    }


def to_calendar_event(lesson: Lesson, compact: bool = False) -> dict[str, Any]:
    """
    Render a lesson as a calendar widget event.

    The widget wants colors on the event itself, so they're resolved here
    from the coach rather than stored.
    """
    color = coach_color(lesson.coach)
    return {
        "id": lesson.id,
        "title": lesson.compact_title if compact else lesson.title,
        "start": lesson.start.isoformat(),
        "end": lesson.end.isoformat(),
        "extendedProps": {
            "student": lesson.student,
            "coach": lesson.coach,
            "rink": lesson.rink,
        },
        "backgroundColor": color,
        "borderColor": color,
    }

