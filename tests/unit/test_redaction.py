"""Unit tests for PII redaction."""

from src.shared.redaction import REDACTED, redact, redact_string
from tests.conftest import make_txn


class TestRedactString:
    def test_masks_card_number(self):
        assert redact_string("card 4111111111111111 declined") == f"card {REDACTED} declined"

    def test_masks_email(self):
        assert redact_string("contact asha.rao@example.com now") == f"contact {REDACTED} now"

    def test_short_numbers_untouched(self):
        assert redact_string("MCC 5411, amount 150000") == "MCC 5411, amount 150000"

    def test_empty(self):
        assert redact_string("") == ""


class TestRedact:
    def test_nested_structures(self):
        value = {
            "reasons": ["PAN 5500000000000004 seen"],
            "detail": {"email": "x@y.io", "count": 3},
            "pair": ("4111111111111111", None),
        }
        assert redact(value) == {
            "reasons": [f"PAN {REDACTED} seen"],
            "detail": {"email": REDACTED, "count": 3},
            "pair": (REDACTED, None),
        }

    def test_does_not_mutate_input(self):
        value = {"note": "4111111111111111"}
        redact(value)
        assert value == {"note": "4111111111111111"}

    def test_idempotent(self):
        value = {"a": ["mail me at a@b.co", "4111 1111", "4111111111111111"]}
        once = redact(value)
        assert redact(once) == once

    def test_models_dumped_to_json(self):
        result = redact(make_txn(merchant="Refund to buyer@shop.in"))
        assert isinstance(result, dict)
        assert result["merchant"] == f"Refund to {REDACTED}"
        assert isinstance(result["ts"], str)
