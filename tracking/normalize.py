from dataclasses import dataclass, replace
from typing import Optional

OPTIONAL_FIELDS = ("ip", "user_agent", "description")


class MalformedPayload(ValueError):
    """The request body is not an event object or a list of them."""


@dataclass(frozen=True)
class Event:
    property: str
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    description: Optional[str] = None


# -----------------------------------------------------------------------------
# Payload parsing
# -----------------------------------------------------------------------------
def _parse_one(item, position):
    if not isinstance(item, dict):
        raise MalformedPayload(f"event #{position} is not an object")

    prop = item.get("property")
    if not isinstance(prop, str):
        raise MalformedPayload(f"event #{position} has no string 'property'")

    fields = {}
    for name in OPTIONAL_FIELDS:
        value = item.get(name)
        if value is not None and not isinstance(value, str):
            raise MalformedPayload(f"event #{position} field '{name}' must be a string")
        fields[name] = value

    return Event(property=prop, **fields)


def parse_events(payload):
    """
    Accept either a single event object or a list of them.
    Any bad entry rejects the whole payload.
    """
    if isinstance(payload, dict):
        return [_parse_one(payload, 0)]
    if isinstance(payload, list):
        return [_parse_one(item, i) for i, item in enumerate(payload)]
    raise MalformedPayload("body must be a JSON object or array")


# -----------------------------------------------------------------------------
# Filling in missing fields
# -----------------------------------------------------------------------------
def strip_port(addr: str) -> str:
    """
    Drop a trailing ":port" by cutting at the last colon.
    Not IPv6 aware: "::1" comes out as ":".
    """
    head, sep, _ = addr.rpartition(":")
    return head if sep else addr


def normalize_event(event: Event, remote_addr: str, user_agent: str, request_target: str) -> Event:
    """
    Fill each missing optional field from the request context.
    Fields the client sent (even empty strings) are kept as they are.
    """
    updates = {}
    if event.ip is None:
        updates["ip"] = strip_port(remote_addr or "")
    if event.user_agent is None:
        updates["user_agent"] = user_agent or ""
    if event.description is None:
        updates["description"] = request_target
    return replace(event, **updates) if updates else event


def request_target(req) -> str:
    raw = req.environ.get("RAW_URI") or req.environ.get("REQUEST_URI")
    if raw:
        return raw
    query = req.query_string.decode("latin-1")
    return f"{req.path}?{query}" if query else req.path


def peer_address(host: str, port) -> str:
    """
    Socket peer as "host:port", IPv6 hosts in brackets, so strip_port only
    ever cuts off the port. The port part stays (empty) when the server
    does not report one.
    """
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    return f"{host}:{port}"


def request_context(req):
    """
    (peer_address, user_agent, request_target) of a Flask request.
    """
    return (
        peer_address(req.remote_addr or "", req.environ.get("REMOTE_PORT", "")),
        req.headers.get("User-Agent", ""),
        request_target(req),
    )
