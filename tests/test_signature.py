"""
Pure unit tests for app/services/signature.py.

No database required. Covers: payload construction, known HMAC vectors,
bit-level tampering of signature and body, missing inputs.
"""
import hashlib
import hmac

from app.services.signature import order_confirmation_payload, sign, verify

SECRET = "s3cr3t"


def flip_bit(text: str, index: int = 0, bit: int = 0) -> str:
    chars = list(text)
    chars[index] = chr(ord(chars[index]) ^ (1 << bit))
    return "".join(chars)


class TestOrderConfirmationPayload:
    def test_pipe_joined_without_escaping(self):
        assert order_confirmation_payload("order_O1", "pay_P1") == b"order_O1|pay_P1"

    def test_pipes_inside_ids_are_not_escaped(self):
        assert order_confirmation_payload("a|b", "c") == b"a|b|c"


class TestSign:
    def test_matches_hmac_sha256_hex(self):
        payload = b"order_O1|pay_P1"
        expected = hmac.new(SECRET.encode(), payload, hashlib.sha256).hexdigest()
        assert sign(payload, SECRET) == expected

    def test_hex_digest_is_64_chars(self):
        assert len(sign(b"x", SECRET)) == 64


class TestVerify:
    def test_valid_order_signature(self):
        payload = order_confirmation_payload("order_O1", "pay_P1")
        assert verify(payload, sign(payload, SECRET), SECRET) is True

    def test_every_single_bit_flip_of_signature_is_rejected(self):
        payload = order_confirmation_payload("order_O1", "pay_P1")
        good = sign(payload, SECRET)
        for index in range(len(good)):
            for bit in range(7):
                mutated = flip_bit(good, index, bit)
                assert verify(payload, mutated, SECRET) is False, (index, bit)

    def test_wrong_secret_rejected(self):
        payload = b"order_O1|pay_P1"
        assert verify(payload, sign(payload, "other"), SECRET) is False

    def test_swapped_ids_rejected(self):
        good = sign(order_confirmation_payload("order_O1", "pay_P1"), SECRET)
        assert verify(order_confirmation_payload("pay_P1", "order_O1"), good, SECRET) is False

    def test_tampered_webhook_body_rejected(self):
        body = b'{"event":"payment.captured","payload":{"payment":{"entity":{"id":"pay_1"}}}}'
        good = sign(body, SECRET)
        for i in range(len(body)):
            tampered = body[:i] + bytes([body[i] ^ 0x01]) + body[i + 1:]
            assert verify(tampered, good, SECRET) is False

    def test_reserialized_body_rejected(self):
        body = b'{"event": "payment.captured"}'
        good = sign(body, SECRET)
        assert verify(b'{"event":"payment.captured"}', good, SECRET) is False

    def test_uppercase_hex_rejected(self):
        payload = b"order_O1|pay_P1"
        assert verify(payload, sign(payload, SECRET).upper(), SECRET) is False

    def test_missing_signature(self):
        assert verify(b"payload", None, SECRET) is False
        assert verify(b"payload", "", SECRET) is False

    def test_missing_secret(self):
        assert verify(b"payload", sign(b"payload", SECRET), "") is False

    def test_non_ascii_signature_rejected(self):
        assert verify(b"payload", "é" * 64, SECRET) is False
