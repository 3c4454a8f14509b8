"""Invite deep links: ``snesonline://join?code=<connection code>``."""

from urllib.parse import parse_qs, urlencode, urlsplit

from codec.connection_code import CodeError
from config import INVITE_SCHEME

INVITE_HOST = "join"


def make_invite_link(code: str, scheme: str = INVITE_SCHEME) -> str:
    return f"{scheme}://{INVITE_HOST}?{urlencode({'code': code})}"


def parse_invite_link(uri: str, scheme: str = INVITE_SCHEME) -> str:
    """Return the connection code carried by an invite link."""
    parts = urlsplit((uri or "").strip())
    if parts.scheme.lower() != scheme.lower():
        raise CodeError(f"Not a {scheme}:// link")
    if (parts.hostname or "").lower() != INVITE_HOST:
        raise CodeError("Not a join link")

    codes = parse_qs(parts.query).get("code", [])
    code = codes[0].strip() if codes else ""
    if not code:
        raise CodeError("Invite link has no code")
    return code
