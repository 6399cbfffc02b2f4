"""Join link construction and parsing.

Full form:  <base>/join?room=<id>&patient=<pid>&doctor=<did>&scheduled=<iso>&type=<type>
Short form: <base>/join/<last 8 chars of id>
Cancel:     <base>/cancel/<access token>

The full id stays canonical; the short form is resolved by suffix lookup.
"""
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlsplit

from telehealth import config
from telehealth.models import Meeting

DEFAULT_LINK_TYPE = "consultation"


@dataclass
class ParsedJoinLink:
    """Values carried in a full join link."""
    room: str
    patient_id: Optional[str] = None
    doctor_id: Optional[str] = None
    scheduled: Optional[str] = None
    type: str = DEFAULT_LINK_TYPE


def _base(base_url: Optional[str]) -> str:
    return (base_url or config.JOIN_BASE_URL).rstrip("/")


def build_join_link(meeting: Meeting, base_url: Optional[str] = None) -> str:
    """Build the full join link for a meeting."""
    params = {"room": meeting.id}
    if meeting.patient_id:
        params["patient"] = meeting.patient_id
    if meeting.doctor_id:
        params["doctor"] = meeting.doctor_id
    params["scheduled"] = meeting.scheduled_time.isoformat()
    params["type"] = meeting.consultation_type.value

    return f"{_base(base_url)}{config.JOIN_PATH}?{urlencode(params)}"


def build_short_link(meeting: Meeting, base_url: Optional[str] = None) -> str:
    return f"{_base(base_url)}{config.SHORT_LINK_PATH}/{meeting.short_code}"


def parse_join_link(link: str) -> Optional[ParsedJoinLink]:
    """
    Extract meeting data from a full join link.

    Args:
        link: URL produced by build_join_link

    Returns:
        ParsedJoinLink, or None if the URL is malformed or has no room
    """
    try:
        parts = urlsplit(link)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None

    query = parse_qs(parts.query)

    def first(key):
        values = query.get(key)
        return values[0] if values else None

    room = first("room")
    if not room:
        return None

    return ParsedJoinLink(
        room=room,
        patient_id=first("patient"),
        doctor_id=first("doctor"),
        scheduled=first("scheduled"),
        type=first("type") or DEFAULT_LINK_TYPE,
    )


def short_code_from_link(link: str) -> Optional[str]:
    """Return the code from a short link (<base>/join/<code>), else None."""
    try:
        path = urlsplit(link).path.rstrip("/")
    except ValueError:
        return None
    prefix = config.SHORT_LINK_PATH.rstrip("/") + "/"
    if not path.startswith(prefix):
        return None
    code = path[len(prefix):]
    if not code or "/" in code:
        return None
    return code


def build_cancel_link(meeting: Meeting, base_url: Optional[str] = None) -> str:
    """Patient-facing cancel link; the access token authorizes it."""
    return f"{_base(base_url)}{config.CANCEL_PATH}/{meeting.access_token}"


def token_from_cancel_link(link: str) -> Optional[str]:
    """Return the access token from a cancel link, else None."""
    try:
        path = urlsplit(link).path.rstrip("/")
    except ValueError:
        return None
    prefix = config.CANCEL_PATH.rstrip("/") + "/"
    if not path.startswith(prefix):
        return None
    token = path[len(prefix):]
    if not token or "/" in token:
        return None
    return token
