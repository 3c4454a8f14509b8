"""Tests for endpoint parsing and formatting."""

import pytest

from codec.endpoint import (
    Endpoint,
    EndpointError,
    format_endpoint,
    is_valid_port,
    make_endpoint,
    parse_endpoint,
    try_parse_endpoint,
)


class TestParseEndpoint:
    def test_ipv4(self):
        ep = parse_endpoint("203.0.113.5:7000")
        assert ep == Endpoint(host="203.0.113.5", port=7000)

    def test_hostname_with_whitespace(self):
        ep = parse_endpoint("  example.com:65535 ")
        assert ep.host == "example.com"
        assert ep.port == 65535

    def test_bracketed_ipv6(self):
        ep = parse_endpoint("[2001:db8::1]:7000")
        assert ep.host == "2001:db8::1"
        assert ep.port == 7000

    def test_raw_ipv6_splits_on_last_colon(self):
        ep = parse_endpoint("fe80::1:7000")
        assert ep.host == "fe80::1"
        assert ep.port == 7000

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "   ",
            None,
            "host",
            ":7000",
            "host:",
            "host:0",
            "host:65536",
            "host:-1",
            "host:70a",
            "host:0000070000",
            "[]:7000",
            "[::1]",
            "[::1]7000",
            "[::1:7000",
        ],
    )
    def test_rejects_malformed(self, text):
        with pytest.raises(EndpointError):
            parse_endpoint(text)
        assert try_parse_endpoint(text) is None


class TestFormatEndpoint:
    @pytest.mark.parametrize(
        "host,port",
        [
            ("203.0.113.5", 1),
            ("example.com", 7000),
            ("2001:db8::1", 65535),
            ("::1", 7000),
        ],
    )
    def test_round_trip(self, host, port):
        assert parse_endpoint(format_endpoint(host, port)) == Endpoint(host=host, port=port)

    def test_ipv6_is_bracketed(self):
        assert format_endpoint("::1", 7000) == "[::1]:7000"
        assert str(make_endpoint("::1", 7000)) == "[::1]:7000"

    def test_already_bracketed_host_is_kept(self):
        assert format_endpoint("[::1]", 7000) == "[::1]:7000"


def test_make_endpoint_validates():
    with pytest.raises(EndpointError):
        make_endpoint("", 7000)
    with pytest.raises(EndpointError):
        make_endpoint("host", 0)


def test_is_valid_port_bounds():
    assert not is_valid_port(0)
    assert is_valid_port(1)
    assert is_valid_port(65535)
    assert not is_valid_port(65536)
