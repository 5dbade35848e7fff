"""
Unit Tests for the Object Store Request Signer

Reference values were computed independently with openssl for the inputs
below.
"""

from datetime import datetime, timezone

import pytest

from menu_tts.core.exceptions import SigningError
from menu_tts.infrastructure.storage.request_signer import (
    EMPTY_PAYLOAD_HASH,
    RequestSigner,
    derive_signing_key,
    encode_query,
    sha256_hex,
)

ACCESS_KEY = "AKIDEXAMPLE"
SECRET_KEY = "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY"
HOST = "acct123.r2.cloudflarestorage.com"
SIGNING_TIME = datetime(2024, 1, 15, 8, 30, 0, tzinfo=timezone.utc)
OBJECT_KEY = "89f2fb76daa617687e48c7ba21f9e264f24c3560ada727a92aff60e1e4f3021a.mp3"


@pytest.fixture
def signer():
    return RequestSigner(
        access_key_id=ACCESS_KEY,
        secret_access_key=SECRET_KEY,
        host=HOST,
        bucket="tts-cache",
        region="auto",
        clock=lambda: SIGNING_TIME,
    )


@pytest.mark.unit
class TestReferenceVector:
    def test_empty_payload_hash(self):
        assert sha256_hex(b"") == EMPTY_PAYLOAD_HASH
        assert EMPTY_PAYLOAD_HASH == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

    def test_canonical_request_digest(self, signer):
        canonical = signer.canonical_request(
            "GET", OBJECT_KEY, None, EMPTY_PAYLOAD_HASH, "20240115T083000Z"
        )

        assert sha256_hex(canonical.encode("utf-8")) == (
            "924e56cc8e50ef0bd336e3f3afb15afdfe463c386a44bcd1e1eb41e2b63a163a"
        )

    def test_signed_get_headers(self, signer):
        headers = signer.sign("GET", OBJECT_KEY)

        assert headers["host"] == HOST
        assert headers["x-amz-date"] == "20240115T083000Z"
        assert headers["x-amz-content-sha256"] == EMPTY_PAYLOAD_HASH
        assert headers["Authorization"] == (
            "AWS4-HMAC-SHA256 "
            "Credential=AKIDEXAMPLE/20240115/auto/s3/aws4_request, "
            "SignedHeaders=host;x-amz-content-sha256;x-amz-date, "
            "Signature=85c50bd3149e474f9c795f12f3ff004501ba7b5661a6080cca344d6acc997c0a"
        )

    def test_explicit_now_overrides_clock(self, signer):
        later = datetime(2024, 1, 16, 0, 0, 0, tzinfo=timezone.utc)

        headers = signer.sign("GET", OBJECT_KEY, now=later)

        assert headers["x-amz-date"] == "20240116T000000Z"
        assert "Credential=AKIDEXAMPLE/20240116/auto/s3/aws4_request" in headers["Authorization"]


@pytest.mark.unit
class TestCanonicalForms:
    def test_string_to_sign_layout(self, signer):
        to_sign = signer.string_to_sign("20240115T083000Z", "canonical")

        lines = to_sign.split("\n")
        assert lines[0] == "AWS4-HMAC-SHA256"
        assert lines[1] == "20240115T083000Z"
        assert lines[2] == "20240115/auto/s3/aws4_request"
        assert lines[3] == sha256_hex(b"canonical")

    def test_signing_key_is_32_bytes_and_date_scoped(self):
        first = derive_signing_key(SECRET_KEY, "20240115", "auto", "s3")
        second = derive_signing_key(SECRET_KEY, "20240116", "auto", "s3")

        assert len(first) == 32
        assert first != second

    def test_bucket_root_uri(self, signer):
        assert signer.canonical_uri("") == "/tts-cache"

    def test_object_uri_is_percent_encoded(self, signer):
        assert signer.canonical_uri("a b/ü.mp3") == "/tts-cache/a%20b/%C3%BC.mp3"

    def test_query_sorted_and_encoded(self):
        assert encode_query({"prefix": "abc/", "list-type": "2"}) == "list-type=2&prefix=abc%2F"

    def test_empty_query(self):
        assert encode_query(None) == ""
        assert encode_query({}) == ""

    def test_body_changes_payload_hash(self, signer):
        headers = signer.sign("PUT", OBJECT_KEY, body=b"ID3audio")

        assert headers["x-amz-content-sha256"] == sha256_hex(b"ID3audio")
        assert headers["Authorization"] != signer.sign("GET", OBJECT_KEY)["Authorization"]

    def test_signatures_are_not_cached(self, signer):
        first = signer.sign("GET", OBJECT_KEY, now=SIGNING_TIME)
        second = signer.sign("GET", OBJECT_KEY, now=datetime(2024, 1, 15, 8, 30, 1, tzinfo=timezone.utc))

        assert first["Authorization"] != second["Authorization"]


@pytest.mark.unit
class TestSignerErrors:
    def test_missing_credentials(self):
        with pytest.raises(SigningError):
            RequestSigner("", "", HOST, "tts-cache")

    def test_malformed_input_raises_signing_error(self, signer):
        with pytest.raises(SigningError):
            signer.sign("GET", OBJECT_KEY, now="not-a-datetime")
