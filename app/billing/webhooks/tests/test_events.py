"""
Tests for webhook event parsing.
"""

import json
from datetime import datetime, timezone as dt_timezone

import pytest

from billing.webhooks.events import WebhookEvent, WebhookEventType, timestamp_to_datetime
from billing.webhooks.handlers import WEBHOOK_HANDLERS
from billing.webhooks.tests.conftest import build_body, charge_payment, encode


class TestWebhookEventType:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("subscription.charged", WebhookEventType.SUBSCRIPTION_CHARGED),
            ("subscription.halted", WebhookEventType.SUBSCRIPTION_HALTED),
            ("payment.failed", WebhookEventType.PAYMENT_FAILED),
        ],
    )
    def test_known_names(self, name, expected):
        assert WebhookEventType.parse(name) is expected

    @pytest.mark.parametrize("name", ["refund.processed", "", None, "SUBSCRIPTION.CHARGED"])
    def test_unknown_names(self, name):
        assert WebhookEventType.parse(name) is WebhookEventType.UNKNOWN

    def test_every_type_has_a_handler(self):
        assert set(WEBHOOK_HANDLERS) == set(WebhookEventType)


class TestWebhookEventFromBody:
    def test_parses_envelope(self):
        body = build_body("subscription.charged", "sub_001", payment=charge_payment())

        event = WebhookEvent.from_body(encode(body))

        assert event.event_type is WebhookEventType.SUBSCRIPTION_CHARGED
        assert event.raw_type == "subscription.charged"
        assert event.account_id == "acc_test_001"
        assert event.created_at == datetime(2024, 6, 10, 6, 13, 20, tzinfo=dt_timezone.utc)
        assert event.subscription_entity["id"] == "sub_001"
        assert event.payment_entity["amount"] == 49900

    def test_unhandled_event_is_kept_verbatim(self):
        event = WebhookEvent.from_body(encode(build_body("invoice.paid")))

        assert event.event_type is WebhookEventType.UNKNOWN
        assert event.raw_type == "invoice.paid"

    def test_missing_entities_are_empty(self):
        event = WebhookEvent.from_body(encode(build_body("subscription.halted")))

        assert event.subscription_entity == {}
        assert event.payment_entity == {}
        assert event.log_context["gateway_subscription_id"] == ""

    def test_invalid_json(self):
        with pytest.raises(ValueError):
            WebhookEvent.from_body(b"{not json")

    def test_non_object_body(self):
        with pytest.raises(ValueError):
            WebhookEvent.from_body(b"[1, 2, 3]")

    def test_non_object_payload(self):
        with pytest.raises(ValueError):
            WebhookEvent.from_body(b'{"event":"subscription.halted","payload":"oops"}')

    def test_non_numeric_created_at(self):
        with pytest.raises(ValueError):
            WebhookEvent.from_body(b'{"event":"subscription.halted","created_at":[1]}')

    @pytest.mark.parametrize(
        "payload",
        [{"subscription": "oops"}, {"subscription": {"entity": "sub_1"}}, {"subscription": None}],
    )
    def test_wrongly_shaped_entity_reads_as_empty(self, payload):
        event = WebhookEvent.from_body(json.dumps({"event": "subscription.halted", "payload": payload}))

        assert event.subscription_entity == {}
        assert event.log_context["gateway_subscription_id"] == ""


class TestTimestampToDatetime:
    def test_converts_unix_seconds(self):
        assert timestamp_to_datetime(0) is None
        assert timestamp_to_datetime(None) is None
        assert timestamp_to_datetime("1718000000") == datetime(2024, 6, 10, 6, 13, 20, tzinfo=dt_timezone.utc)
