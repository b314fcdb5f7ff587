"""Pack a planner state into a URL token and back.

Two token schemes are understood. ``b64`` is URL-safe base64 over compact
UTF-8 JSON and is what new links use. ``percent`` is the percent-encoded JSON
text written by the older web calculator; those links still load.
"""

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import parse_qs, quote, unquote, urlsplit

from planner_state import PlannerState

logger = logging.getLogger(__name__)

SCHEMES = ("b64", "percent")
STATE_PARAM = "state"
# characters encodeURIComponent leaves alone
PERCENT_SAFE = "-_.!~*'()"


class StateDecodeError(ValueError):
    """Raised when a share token cannot be turned back into a state."""


class ClipboardPort(Protocol):
    def write_text(self, text: str) -> None: ...


class LocationPort(Protocol):
    origin: str
    pathname: str


@dataclass
class StaticLocation:
    origin: str
    pathname: str

    @classmethod
    def from_url(cls, url: str) -> "StaticLocation":
        parts = urlsplit(url)
        if not parts.scheme or not parts.netloc:
            raise ValueError(f"not an absolute URL: {url!r}")
        return cls(origin=f"{parts.scheme}://{parts.netloc}", pathname=parts.path or "/")


def encode_state(state: PlannerState, scheme: str = "b64") -> str:
    text = json.dumps(state.export_state(), separators=(",", ":"), ensure_ascii=False)
    if scheme == "b64":
        return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")
    if scheme == "percent":
        return quote(text, safe=PERCENT_SAFE)
    raise ValueError(f"unknown encoding scheme {scheme!r}; expected one of {SCHEMES}")


def _token_to_json(token: str) -> str:
    token = token.strip()
    if token.startswith("{"):
        # query parsing already undid the percent-encoding
        return token
    unquoted = unquote(token)
    if unquoted.startswith("{"):
        return unquoted
    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.b64decode(padded, altchars=b"-_", validate=True)
        return raw.decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise StateDecodeError(f"token is neither JSON nor base64: {exc}") from exc


def _reject_constant(name: str):
    raise ValueError(f"non-finite number {name} in state token")


def decode_state(token: str, collapse_log: bool = True) -> PlannerState:
    if not token:
        raise StateDecodeError("empty state token")
    text = _token_to_json(token)
    try:
        data = json.loads(text, parse_constant=_reject_constant)
    except ValueError as exc:
        raise StateDecodeError(f"invalid JSON in state token: {exc}") from exc
    if not isinstance(data, dict):
        raise StateDecodeError(f"state token holds {type(data).__name__}, not an object")
    try:
        return PlannerState(initial_state=data, collapse_log=collapse_log)
    except ValueError as exc:
        raise StateDecodeError(str(exc)) from exc


def load_state(token: str, collapse_log: bool = True) -> Optional[PlannerState]:
    try:
        return decode_state(token, collapse_log=collapse_log)
    except StateDecodeError as exc:
        logger.warning("Failed to decode state: %s", exc)
        return None


def state_from_url(url: str, collapse_log: bool = True) -> PlannerState:
    """Build the starting state for a page URL, falling back to defaults."""
    values = parse_qs(urlsplit(url).query).get(STATE_PARAM)
    state = None
    if values:
        state = load_state(values[0], collapse_log=collapse_log)
        if state is None:
            logger.warning("Invalid state in URL, starting from defaults")
    if state is None:
        state = PlannerState(collapse_log=collapse_log)
    state.submitted = True
    return state


def state_from_link(link: str, collapse_log: bool = True) -> PlannerState:
    """Accept either a full share URL or a bare token."""
    if "://" in link or f"{STATE_PARAM}=" in link:
        return state_from_url(link, collapse_log=collapse_log)
    state = load_state(link, collapse_log=collapse_log) or PlannerState(collapse_log=collapse_log)
    state.submitted = True
    return state


def build_share_url(state: PlannerState, location: LocationPort, scheme: str = "b64") -> str:
    token = encode_state(state, scheme=scheme)
    return f"{location.origin}{location.pathname}?{STATE_PARAM}={token}"


def copy_shareable_link(
    state: PlannerState,
    location: LocationPort,
    clipboard: ClipboardPort,
    scheme: str = "b64",
) -> str:
    url = build_share_url(state, location, scheme=scheme)
    clipboard.write_text(url)
    state.notify("info", "Link copied to clipboard!")
    return url


def open_link(state: PlannerState, link: str) -> PlannerState:
    """Replace ``state`` in place with whatever ``link`` holds (defaults when it is bad)."""
    loaded = state_from_link(link.strip(), collapse_log=state.collapse_log)
    state.load_state_dict(loaded.export_state())
    state.submitted = True
    return state
