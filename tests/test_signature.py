import hashlib
import hmac

import pytest

from services.donation_service.signature import compute_signature, verify_signature

SECRET = "s3cr3t"


class TestComputeSignature:

    def test_matches_hmac_sha256_over_pipe_joined_ids(self):
        expected = hmac.new(b"s3cr3t", b"order_1|pay_1", hashlib.sha256).hexdigest()
        assert compute_signature(SECRET, "order_1", "pay_1") == expected

    def test_is_lowercase_hex(self):
        digest = compute_signature(SECRET, "order_1", "pay_1")
        assert len(digest) == 64
        assert digest == digest.lower()

    def test_missing_secret_is_a_programming_error(self):
        with pytest.raises(ValueError):
            compute_signature("", "order_1", "pay_1")


class TestVerifySignature:

    def test_accepts_genuine_signature(self):
        sig = compute_signature(SECRET, "order_1", "pay_1")
        assert verify_signature(SECRET, "order_1", "pay_1", sig) is True

    def test_rejects_swapped_payment_id(self):
        sig = compute_signature(SECRET, "order_1", "pay_1")
        assert verify_signature(SECRET, "order_1", "pay_2", sig) is False

    def test_rejects_signature_from_other_secret(self):
        sig = compute_signature("another-secret", "order_1", "pay_1")
        assert verify_signature(SECRET, "order_1", "pay_1", sig) is False

    def test_rejects_uppercased_digest(self):
        sig = compute_signature(SECRET, "order_1", "pay_1").upper()
        assert verify_signature(SECRET, "order_1", "pay_1", sig) is False

    @pytest.mark.parametrize("signature", ["", None, 12345, "ünïcode-sig"])
    def test_malformed_signature_is_a_mismatch(self, signature):
        assert verify_signature(SECRET, "order_1", "pay_1", signature) is False

    def test_non_string_ids_are_a_mismatch(self):
        sig = compute_signature(SECRET, "order_1", "pay_1")
        assert verify_signature(SECRET, None, "pay_1", sig) is False

    def test_missing_secret_raises(self):
        with pytest.raises(ValueError):
            verify_signature(None, "order_1", "pay_1", "abc")
