"""
Endpoint codec: ``host:port`` text <-> :class:`Endpoint`.

Accepted forms:
  - ``ipv4:port`` and ``hostname:port``
  - ``[ipv6]:port``
  - raw ``ipv6:port`` (best effort, split on the last ``:``; an address such as
    ``fe80::1`` without a port is read as host ``fe80:`` / port ``1``)
"""

from pydantic import BaseModel, ConfigDict, Field, ValidationError

MIN_PORT = 1
MAX_PORT = 65535


class EndpointError(ValueError):
    """Raised for endpoint text that cannot be parsed."""


class Endpoint(BaseModel):
    """A reachable UDP endpoint."""
    model_config = ConfigDict(frozen=True)

    host: str = Field(min_length=1)
    port: int = Field(ge=MIN_PORT, le=MAX_PORT)

    def __str__(self) -> str:
        return format_endpoint(self.host, self.port)


def is_valid_port(port: int) -> bool:
    return MIN_PORT <= port <= MAX_PORT


def _parse_port(text: str) -> int:
    if not text or len(text) > 5 or not (text.isascii() and text.isdigit()):
        raise EndpointError(f"Invalid port: {text!r}")
    port = int(text)
    if not is_valid_port(port):
        raise EndpointError(f"Port out of range: {port}")
    return port


def make_endpoint(host: str, port: int) -> Endpoint:
    """Build an :class:`Endpoint`, converting validation errors to EndpointError."""
    try:
        return Endpoint(host=host, port=port)
    except ValidationError as e:
        raise EndpointError(f"Invalid endpoint {host!r}:{port!r}") from e


def parse_endpoint(text: str | None) -> Endpoint:
    """Parse ``host:port`` text. Raises EndpointError on any malformed input."""
    t = (text or "").strip()
    if not t:
        raise EndpointError("Empty endpoint")

    if t.startswith("["):
        close = t.find("]")
        if close <= 1 or close + 1 >= len(t) or t[close + 1] != ":":
            raise EndpointError(f"Malformed bracketed endpoint: {t!r}")
        return make_endpoint(t[1:close], _parse_port(t[close + 2:]))

    colon = t.rfind(":")
    if colon <= 0 or colon + 1 >= len(t):
        raise EndpointError(f"Endpoint must be host:port, got {t!r}")
    return make_endpoint(t[:colon], _parse_port(t[colon + 1:]))


def try_parse_endpoint(text: str | None) -> Endpoint | None:
    """Like :func:`parse_endpoint` but returns None instead of raising."""
    try:
        return parse_endpoint(text)
    except EndpointError:
        return None


def format_endpoint(host: str, port: int) -> str:
    """Format ``host:port``, bracketing IPv6 hosts so the result parses back."""
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    return f"{host}:{port}"
