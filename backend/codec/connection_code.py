"""
Connection code codec.

Three generations are decodable:

  SNO1:<b64url>        payload ``v=1&pub=host:port[&lan=host:port]``
  SNO2:<b64url>        payload ``v=2&pub=host:port[&lan=host:port]&sig=<sig>``
  host:port:secret     plain connection string with a pre-shared secret

``encode_connection_code`` always emits SNO2. The SNO2 signature is a truncated
SHA-256 of the payload preceding it; it is carried but never verified.
"""

import base64
import logging
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from codec.endpoint import Endpoint, EndpointError, parse_endpoint, try_parse_endpoint
from security.crypto import b64url_encode, short_signature

logger = logging.getLogger(__name__)

V1_PREFIX = "SNO1:"
V2_PREFIX = "SNO2:"
NEWEST_PREFIX = V2_PREFIX


class CodeError(ValueError):
    """Raised for a connection code that cannot be encoded or decoded."""


class CodeV1(BaseModel):
    """Generation A: unsigned base64 payload."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["v1"] = "v1"
    public: Endpoint
    lan: Endpoint | None = None


class CodeV2(BaseModel):
    """Generation B: base64 payload with an informational signature."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["v2"] = "v2"
    public: Endpoint
    lan: Endpoint | None = None
    signature: str = ""


class PlainSecret(BaseModel):
    """Generation C: literal ``host:port:secret``."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["plain"] = "plain"
    public: Endpoint
    secret: str = Field(min_length=1)
    lan: None = None


ConnectionCode = Annotated[
    Union[CodeV1, CodeV2, PlainSecret], Field(discriminator="kind")
]


# --- Encoding ---

def encode_connection_code(public: Endpoint, lan: Endpoint | None = None) -> str:
    """Encode a shareable SNO2 code for ``public`` with an optional LAN hint."""
    payload = f"v=2&pub={public}"
    if lan is not None:
        payload += f"&lan={lan}"
    payload += f"&sig={short_signature(payload)}"
    return V2_PREFIX + b64url_encode(payload.encode("utf-8"))


def validate_secret(secret: str) -> str:
    if not secret:
        raise CodeError("Secret is required")
    if ":" in secret:
        raise CodeError("Secret must not contain ':'")
    if any(ch.isspace() for ch in secret):
        raise CodeError("Secret must not contain whitespace")
    return secret


def encode_connection_string(public: Endpoint, secret: str) -> str:
    """Encode a plain ``host:port:secret`` connection string."""
    return f"{public}:{validate_secret(secret)}"


# --- Decoding ---

def _b64url_decode(body: str) -> str:
    body = body.strip()
    if not body:
        raise CodeError("Invalid code")

    # Restore padding.
    mod = len(body) % 4
    if mod == 2:
        body += "=="
    elif mod == 3:
        body += "="
    elif mod != 0:
        raise CodeError("Invalid code length")

    try:
        data = base64.b64decode(body, altchars=b"-_", validate=True)
        return data.decode("utf-8")
    except ValueError as e:
        raise CodeError("Invalid code (corrupted payload)") from e


def _parse_payload(payload: str) -> dict[str, str]:
    fields: dict[str, str] = {}
    for part in payload.split("&"):
        key, sep, value = part.partition("=")
        if not sep or not key:
            continue
        fields[key] = value
    return fields


def _decode_base64_code(text: str, prefix: str) -> CodeV1 | CodeV2:
    fields = _parse_payload(_b64url_decode(text[len(prefix):]))

    try:
        public = parse_endpoint(fields.get("pub"))
    except EndpointError as e:
        raise CodeError("Code is missing a valid public endpoint") from e

    # An unusable LAN hint is dropped, not fatal.
    lan = try_parse_endpoint(fields.get("lan"))
    if "lan" in fields and lan is None:
        logger.debug(f"Ignoring invalid LAN hint in code: {fields['lan']!r}")

    if prefix == V2_PREFIX:
        return CodeV2(public=public, lan=lan, signature=fields.get("sig", ""))
    return CodeV1(public=public, lan=lan)


def _decode_connection_string(text: str) -> PlainSecret:
    colon = text.rfind(":")
    if colon <= 0 or colon + 1 >= len(text):
        raise CodeError(
            "Invalid connection string (expected SNO code or host:port:secret)"
        )
    try:
        public = parse_endpoint(text[:colon])
    except EndpointError as e:
        raise CodeError(f"Invalid connection string: {e}") from e
    return PlainSecret(public=public, secret=validate_secret(text[colon + 1:]))


def decode_connection_code(code: str | None) -> CodeV1 | CodeV2 | PlainSecret:
    """
    Decode any supported generation.

    Raises:
        CodeError: for every kind of malformed input.
    """
    t = (code or "").strip()
    if not t:
        raise CodeError("Empty code")
    if t.startswith(V2_PREFIX):
        return _decode_base64_code(t, V2_PREFIX)
    if t.startswith(V1_PREFIX):
        return _decode_base64_code(t, V1_PREFIX)
    return _decode_connection_string(t)


def secret_of(code: CodeV1 | CodeV2 | PlainSecret) -> str:
    """The pre-shared secret carried by ``code`` ("" for SNO codes)."""
    return code.secret if isinstance(code, PlainSecret) else ""


def describe(code: CodeV1 | CodeV2 | PlainSecret) -> str:
    """One-line human summary of a decoded code."""
    if isinstance(code, PlainSecret):
        return f"Connection string for {code.public} (with secret)"
    label = "SNO2" if isinstance(code, CodeV2) else "SNO1"
    text = f"{label} code for {code.public}"
    if code.lan is not None:
        text += f" (LAN {code.lan})"
    return text
