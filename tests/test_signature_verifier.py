"""
Razorpay signature verification.

The verdict gates every order write, so any incomplete input must fail
closed and any change to the signature must be rejected.
"""
import hashlib
import hmac

import pytest

from storefront.services.signature_verifier import compute_signature, verify_signature

SECRET = "test_secret"


def _reference(order_id: str, payment_id: str, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


class TestComputeSignature:
    def test_matches_reference_hmac(self):
        assert compute_signature("order_A1", "pay_B2", SECRET) == _reference("order_A1", "pay_B2")

    def test_separator_is_part_of_the_body(self):
        # "ab|c" and "a|bc" must not collide
        assert compute_signature("ab", "c", SECRET) != compute_signature("a", "bc", SECRET)


class TestVerifySignature:
    @pytest.mark.parametrize("order_id,payment_id", [
        ("order_Nx81", "pay_Nx82"),
        ("order_with spaces", "pay_ünïcode"),
        ("o", "p"),
    ])
    def test_valid_signature_accepted(self, order_id, payment_id):
        signature = _reference(order_id, payment_id)
        assert verify_signature(order_id, payment_id, signature, SECRET) is True

    def test_every_single_character_mutation_rejected(self):
        signature = _reference("order_1", "pay_1")
        for i, ch in enumerate(signature):
            replacement = "0" if ch != "0" else "1"
            mutated = signature[:i] + replacement + signature[i + 1:]
            assert verify_signature("order_1", "pay_1", mutated, SECRET) is False, f"position {i}"

    def test_wrong_secret_rejected(self):
        signature = _reference("order_1", "pay_1", secret="other")
        assert verify_signature("order_1", "pay_1", signature, SECRET) is False

    def test_swapped_ids_rejected(self):
        signature = _reference("order_1", "pay_1")
        assert verify_signature("pay_1", "order_1", signature, SECRET) is False

    @pytest.mark.parametrize("args", [
        (None, "pay_1", "sig", SECRET),
        ("order_1", "", "sig", SECRET),
        ("order_1", "pay_1", None, SECRET),
        ("order_1", "pay_1", "sig", None),
        ("order_1", "pay_1", "sig", ""),
        (123, "pay_1", "sig", SECRET),
    ])
    def test_incomplete_input_fails_closed(self, args):
        assert verify_signature(*args) is False

    def test_truncated_signature_rejected(self):
        signature = _reference("order_1", "pay_1")
        assert verify_signature("order_1", "pay_1", signature[:-1], SECRET) is False
