"""
Unit tests for Facebook signed requests and the data-deletion flow.
"""

import time

import pytest

from app.core.errors import IntegrityError, SignedRequestError
from app.core.providers import Provider
from app.services.facebook import (
    DeletionService,
    base64url_decode,
    base64url_encode,
    parse_signed_request,
)
from tests.conftest import TEST_FACEBOOK_SECRET

STATUS_URL = "https://funnyjoke.example/api/v1/facebook/data-deletion/status"


def flip_signature_bit(signed_request: str) -> str:
    encoded_sig, payload = signed_request.split(".", 1)
    sig = bytearray(base64url_decode(encoded_sig))
    sig[0] ^= 0x01
    return f"{base64url_encode(bytes(sig))}.{payload}"


class TestBase64Url:
    @pytest.mark.parametrize("data", [b"", b"f", b"fo", b"foo", b"\xfb\xff\xfe"])
    def test_unpadded_segments_decode(self, data):
        encoded = base64url_encode(data)

        assert "=" not in encoded
        assert base64url_decode(encoded) == data

    def test_invalid_characters_rejected(self):
        with pytest.raises(SignedRequestError):
            base64url_decode("abc$")


class TestParseSignedRequest:
    def test_valid_request(self, make_signed_request):
        token = make_signed_request({"user_id": "1234", "issued_at": 1_700_000_000})

        data = parse_signed_request(token, TEST_FACEBOOK_SECRET, max_age_seconds=86400, now=1_700_000_100)

        assert data["user_id"] == "1234"
        assert data["algorithm"] == "HMAC-SHA256"

    def test_signature_covers_encoded_payload(self, make_signed_request):
        token = make_signed_request({"user_id": "1"})
        encoded_sig, encoded_payload = token.split(".")

        # Same JSON, different encoding of the payload segment: must not verify
        with pytest.raises(SignedRequestError):
            parse_signed_request(f"{encoded_sig}.{encoded_payload}==", TEST_FACEBOOK_SECRET)

    @pytest.mark.parametrize("token", ["", "no-dot-here", ".payload", "signature.", None])
    def test_malformed_input(self, token):
        with pytest.raises(SignedRequestError):
            parse_signed_request(token, TEST_FACEBOOK_SECRET)

    def test_flipped_bit_fails(self, make_signed_request):
        token = flip_signature_bit(make_signed_request({"user_id": "1"}))

        with pytest.raises(SignedRequestError, match="Bad signature"):
            parse_signed_request(token, TEST_FACEBOOK_SECRET)

    def test_truncated_signature_fails(self, make_signed_request):
        encoded_sig, payload = make_signed_request({"user_id": "1"}).split(".")
        short_sig = base64url_encode(base64url_decode(encoded_sig)[:16])

        with pytest.raises(SignedRequestError, match="Bad signature"):
            parse_signed_request(f"{short_sig}.{payload}", TEST_FACEBOOK_SECRET)

    def test_wrong_secret_fails(self, make_signed_request):
        token = make_signed_request({"user_id": "1"}, secret="other-secret")

        with pytest.raises(SignedRequestError):
            parse_signed_request(token, TEST_FACEBOOK_SECRET)

    def test_missing_secret_is_integrity_error(self, make_signed_request):
        with pytest.raises(IntegrityError):
            parse_signed_request(make_signed_request({"user_id": "1"}), "")

    def test_missing_user_id(self, make_signed_request):
        with pytest.raises(SignedRequestError, match="user_id"):
            parse_signed_request(make_signed_request({"issued_at": int(time.time())}), TEST_FACEBOOK_SECRET)

    def test_unexpected_algorithm(self, make_signed_request):
        token = make_signed_request({"user_id": "1", "algorithm": "HMAC-SHA1"})

        with pytest.raises(SignedRequestError, match="algorithm"):
            parse_signed_request(token, TEST_FACEBOOK_SECRET)

    def test_stale_request(self, make_signed_request):
        token = make_signed_request({"user_id": "1", "issued_at": 1_000})

        with pytest.raises(SignedRequestError, match="stale"):
            parse_signed_request(token, TEST_FACEBOOK_SECRET, max_age_seconds=86400, now=1_000 + 86401)

    def test_future_request(self, make_signed_request):
        token = make_signed_request({"user_id": "1", "issued_at": 10_000})

        with pytest.raises(SignedRequestError, match="future"):
            parse_signed_request(token, TEST_FACEBOOK_SECRET, max_age_seconds=86400, now=1_000)

    def test_freshness_check_disabled_without_max_age(self, make_signed_request):
        token = make_signed_request({"user_id": "1", "issued_at": 1})

        assert parse_signed_request(token, TEST_FACEBOOK_SECRET)["user_id"] == "1"


class TestDeletionService:
    def process(self, token, repo, secret=TEST_FACEBOOK_SECRET):
        return DeletionService.process_deletion_request(
            token, repo, app_secret=secret, status_base_url=STATUS_URL, max_age_seconds=86400
        )

    def test_deletes_linked_account(self, repo, make_signed_request):
        linked = repo.create(email="fb@x.com", facebook_id="fb-42")
        other = repo.create(email="g@x.com", google_id="g-1")
        token = make_signed_request({"user_id": "fb-42", "issued_at": int(time.time())})

        confirmation = self.process(token, repo)

        assert repo.find_by_id(linked.id) is None
        assert repo.find_by_id(other.id) is not None
        assert confirmation.url == f"{STATUS_URL}?ticket={confirmation.confirmation_code}"

    def test_repeat_request_is_noop_with_fresh_code(self, repo, make_signed_request):
        repo.create(facebook_id="fb-42")
        token = make_signed_request({"user_id": "fb-42", "issued_at": int(time.time())})

        first = self.process(token, repo)
        second = self.process(token, repo)

        assert repo.find_by_provider_id(Provider.FACEBOOK, "fb-42") is None
        assert first.confirmation_code != second.confirmation_code

    def test_tampered_request_still_confirms(self, repo, make_signed_request):
        user = repo.create(facebook_id="fb-42")
        token = flip_signature_bit(make_signed_request({"user_id": "fb-42", "issued_at": int(time.time())}))

        confirmation = self.process(token, repo)

        assert confirmation.confirmation_code
        assert confirmation.url.startswith(STATUS_URL)
        assert repo.find_by_id(user.id) is not None

    def test_code_does_not_embed_user_id(self, memory_repo, make_signed_request):
        token = make_signed_request({"user_id": "fb-4242", "issued_at": int(time.time())})

        confirmation = self.process(token, memory_repo)

        assert "4242" not in confirmation.confirmation_code
        assert "4242" not in confirmation.url

    def test_missing_secret_still_confirms(self, memory_repo, make_signed_request):
        confirmation = self.process(make_signed_request({"user_id": "1"}), memory_repo, secret="")

        assert confirmation.as_response().keys() == {"url", "confirmation_code"}

    def test_store_failure_still_confirms(self, memory_repo, make_signed_request, monkeypatch):
        def broken(provider, provider_id):
            raise IntegrityError("User store unavailable")

        monkeypatch.setattr(memory_repo, "delete_by_provider_id", broken)

        confirmation = self.process(make_signed_request({"user_id": "1"}), memory_repo)

        assert confirmation.confirmation_code
