"""Tests for invite deep links."""

import pytest

from codec.connection_code import CodeError, encode_connection_code
from codec.endpoint import make_endpoint
from codec.invite import make_invite_link, parse_invite_link


def test_round_trip_sno2_code():
    code = encode_connection_code(make_endpoint("203.0.113.5", 40000))
    link = make_invite_link(code)
    assert link.startswith("snesonline://join?code=")
    assert parse_invite_link(link) == code


def test_round_trip_plain_string():
    link = make_invite_link("1.2.3.4:7000:a+b")
    assert parse_invite_link(link) == "1.2.3.4:7000:a+b"


def test_scheme_is_case_insensitive():
    assert parse_invite_link("SNESONLINE://join?code=abc") == "abc"


@pytest.mark.parametrize(
    "uri",
    [
        "",
        "https://join?code=abc",
        "snesonline://host?code=abc",
        "snesonline://join",
        "snesonline://join?code=",
        "snesonline://join?other=abc",
    ],
)
def test_rejects(uri):
    with pytest.raises(CodeError):
        parse_invite_link(uri)
