"""
Tests for connection code encoding and decoding.

Covers the SNO2 codes this version emits, SNO1/SNO2 codes produced by older
releases, plain ``host:port:secret`` strings, and corrupted input.
"""

import base64

import pytest

from codec.connection_code import (
    NEWEST_PREFIX,
    CodeError,
    CodeV1,
    CodeV2,
    PlainSecret,
    decode_connection_code,
    describe,
    encode_connection_code,
    encode_connection_string,
    secret_of,
)
from codec.endpoint import make_endpoint
from security.crypto import short_signature


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


PUBLIC = make_endpoint("203.0.113.5", 40000)
LAN = make_endpoint("192.168.1.20", 7000)


class TestEncode:
    def test_emits_newest_generation(self):
        code = encode_connection_code(PUBLIC, LAN)
        assert code.startswith(NEWEST_PREFIX)
        assert code.startswith("SNO2:")
        assert "=" not in code

    def test_round_trip_keeps_endpoints(self):
        decoded = decode_connection_code(encode_connection_code(PUBLIC, LAN))
        assert isinstance(decoded, CodeV2)
        assert decoded.public == PUBLIC
        assert decoded.lan == LAN

    def test_without_lan(self):
        decoded = decode_connection_code(encode_connection_code(PUBLIC))
        assert decoded.public == PUBLIC
        assert decoded.lan is None

    def test_ipv6_public(self):
        public = make_endpoint("2001:db8::1", 7000)
        assert decode_connection_code(encode_connection_code(public)).public == public

    def test_signature_is_truncated_sha256_of_payload(self):
        decoded = decode_connection_code(encode_connection_code(PUBLIC))
        assert decoded.signature == short_signature(f"v=2&pub={PUBLIC}")
        assert len(decoded.signature) == 16


class TestDecodeOlderGenerations:
    def test_sno1(self):
        decoded = decode_connection_code("SNO1:" + _b64("v=1&pub=198.51.100.7:7000&lan=10.0.0.4:7000"))
        assert isinstance(decoded, CodeV1)
        assert decoded.public == make_endpoint("198.51.100.7", 7000)
        assert decoded.lan == make_endpoint("10.0.0.4", 7000)

    def test_sno2_with_bogus_signature_still_decodes(self):
        decoded = decode_connection_code("SNO2:" + _b64("v=2&pub=198.51.100.7:7000&sig=nonsense"))
        assert isinstance(decoded, CodeV2)
        assert decoded.signature == "nonsense"

    def test_padded_body(self):
        body = base64.urlsafe_b64encode(b"v=1&pub=198.51.100.7:7000").decode()
        assert decode_connection_code("SNO1:" + body).public.port == 7000

    def test_invalid_lan_hint_is_dropped(self):
        decoded = decode_connection_code("SNO2:" + _b64("v=2&pub=198.51.100.7:7000&lan=garbage"))
        assert decoded.lan is None

    def test_missing_pub(self):
        with pytest.raises(CodeError):
            decode_connection_code("SNO2:" + _b64("v=2&lan=10.0.0.4:7000"))


class TestPlainConnectionString:
    def test_decode(self):
        decoded = decode_connection_code("1.2.3.4:7000:mysecret")
        assert isinstance(decoded, PlainSecret)
        assert decoded.public == make_endpoint("1.2.3.4", 7000)
        assert decoded.secret == "mysecret"
        assert secret_of(decoded) == "mysecret"

    def test_bracketed_ipv6(self):
        decoded = decode_connection_code("[2001:db8::1]:7000:s3cr3t")
        assert decoded.public.host == "2001:db8::1"
        assert decoded.secret == "s3cr3t"

    def test_encode(self):
        assert encode_connection_string(make_endpoint("1.2.3.4", 7000), "mysecret") == "1.2.3.4:7000:mysecret"

    @pytest.mark.parametrize("secret", ["", "a:b", "has space"])
    def test_encode_rejects_bad_secret(self, secret):
        with pytest.raises(CodeError):
            encode_connection_string(PUBLIC, secret)

    @pytest.mark.parametrize("text", ["1.2.3.4:7000", "1.2.3.4:7000:", "1.2.3.4:notaport:secret", "secret"])
    def test_decode_rejects(self, text):
        with pytest.raises(CodeError):
            decode_connection_code(text)


class TestCorruption:
    @pytest.mark.parametrize("text", ["", "   ", None, "SNO2:", "SNO2:!!!!", "SNO1:a", "SNO2:" + _b64("\xff")])
    def test_garbage(self, text):
        with pytest.raises(CodeError):
            decode_connection_code(text)

    def test_single_character_corruption_only_raises_code_error(self):
        code = encode_connection_code(PUBLIC, LAN)
        alphabet = "AZaz09-_=:!"
        for i in range(len(code)):
            for ch in alphabet:
                if code[i] == ch:
                    continue
                corrupted = code[:i] + ch + code[i + 1:]
                try:
                    decode_connection_code(corrupted)
                except CodeError:
                    pass

    def test_non_utf8_payload(self):
        body = base64.urlsafe_b64encode(b"\xff\xfe\xfd").decode().rstrip("=")
        with pytest.raises(CodeError):
            decode_connection_code("SNO2:" + body)


def test_describe():
    assert describe(decode_connection_code(encode_connection_code(PUBLIC, LAN))).startswith("SNO2 code for")
    assert "with secret" in describe(decode_connection_code("1.2.3.4:7000:x"))
    assert secret_of(decode_connection_code(encode_connection_code(PUBLIC))) == ""
