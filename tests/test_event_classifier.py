"""
בדיקות סיווג בקשות webhook: ping / unparseable / irrelevant / event
"""
import json

import pytest
from hypothesis import given, settings as h_settings
from hypothesis.strategies import (
    binary,
    dictionaries,
    integers,
    none,
    one_of,
    sampled_from,
    text,
)

from app.domain.services.webhooks.classifier import (
    classify,
    extract_customer_identity,
    extract_display_number,
    webhook_headers,
)
from app.domain.services.webhooks.types import (
    ClassificationKind,
    WebhookEventType,
    WebhookSource,
)

ORDER = WebhookEventType.ORDER_STATUS
SUBSCRIPTION = WebhookEventType.SUBSCRIPTION_STATUS


class TestPingDetection:

    @pytest.mark.unit
    @pytest.mark.parametrize("body", ["", "   ", "\n\t"])
    def test_empty_body_is_ping(self, body):
        assert classify(body, {}, ORDER).kind is ClassificationKind.PING

    @pytest.mark.unit
    def test_form_encoded_ping(self):
        """WooCommerce שולח ping כ-webhook_id=N בעת שמירת ה-webhook"""
        assert classify("webhook_id=15", {}, ORDER).kind is ClassificationKind.PING

    @pytest.mark.unit
    def test_json_ping_without_id(self):
        result = classify('{"webhook_id": "15"}', {}, ORDER)
        assert result.kind is ClassificationKind.PING
        assert result.event is None

    @pytest.mark.unit
    def test_webhook_id_with_real_id_is_event(self):
        """webhook_id לבד לא הופך אירוע אמיתי ל-ping"""
        body = json.dumps({"webhook_id": 15, "id": 99, "status": "completed"})
        assert classify(body, {}, ORDER).kind is ClassificationKind.EVENT


class TestUnparseableAndIrrelevant:

    @pytest.mark.unit
    @pytest.mark.parametrize("body", ["{not json", "{", "plain text", '{"id": 1,}'])
    def test_malformed_json(self, body):
        assert classify(body, {}, ORDER).kind is ClassificationKind.UNPARSEABLE

    @pytest.mark.unit
    @pytest.mark.parametrize("body", ["[1, 2]", "42", '"completed"', "null"])
    def test_non_object_json_is_irrelevant(self, body):
        assert classify(body, {}, ORDER).kind is ClassificationKind.IRRELEVANT

    @pytest.mark.unit
    @pytest.mark.parametrize("payload", [
        {"status": "completed"},
        {"id": 1234},
        {"id": 1234, "status": ""},
        {"id": "", "status": "completed"},
        {"id": 0, "status": "completed"},
        {"id": 1234, "status": None},
        {"id": 77, "status": "\u0001", "billing": {"email": "a@b.com"}},
        {"id": 77, "status": " \u0000\u0007 "},
        {"id": "\u0001\u0002", "status": "completed"},
    ])
    def test_missing_id_or_status(self, payload):
        assert classify(json.dumps(payload), {}, ORDER).kind is ClassificationKind.IRRELEVANT

    @pytest.mark.unit
    def test_resource_id_longer_than_column_is_irrelevant(self):
        """id שלא נכנס לעמודה לא יכול להירשם, ולכן גם לא לעבור dedup"""
        body = json.dumps({"id": "x" * 65, "status": "completed"})
        assert classify(body, {}, ORDER).kind is ClassificationKind.IRRELEVANT

    @pytest.mark.unit
    def test_resource_id_at_column_length_is_event(self):
        body = json.dumps({"id": "x" * 64, "status": "completed"})
        result = classify(body, {}, ORDER)

        assert result.is_event
        assert result.event.resource_id == "x" * 64

    @pytest.mark.unit
    def test_overlong_identity_dropped(self):
        email = "a" * 250 + "@b.com"
        body = json.dumps({"id": 5, "status": "completed", "billing": {"email": email}})

        assert classify(body, {}, ORDER).event.customer_identity is None


class TestEventExtraction:

    @pytest.mark.unit
    def test_order_event_fields(self):
        body = json.dumps({
            "id": 1234,
            "number": "1234",
            "status": "Completed",
            "billing": {"email": "a@b.com"},
        })
        result = classify(body, {}, ORDER)

        assert result.is_event
        event = result.event
        assert event.source is WebhookSource.WOOCOMMERCE
        assert event.event_type is ORDER
        assert event.resource_id == "1234"
        assert event.resource_type == "order"
        assert event.status == "completed"
        assert event.display_number == "1234"
        assert event.customer_identity == "a@b.com"
        assert event.next_payment_date is None
        assert event.raw_payload["id"] == 1234

    @pytest.mark.unit
    def test_subscription_event_keeps_next_payment_date(self):
        body = json.dumps({
            "id": 77,
            "status": "active",
            "billing": {"email": "a@b.com"},
            "next_payment_date": "2026-11-01T00:00:00",
        })
        event = classify(body, {}, SUBSCRIPTION).event

        assert event.resource_type == "subscription"
        assert event.next_payment_date == "2026-11-01T00:00:00"
        # אין number — נופלים ל-id
        assert event.display_number == "77"

    @pytest.mark.unit
    def test_next_payment_date_ignored_for_orders(self):
        body = json.dumps({"id": 1, "status": "completed", "next_payment_date": "2026-11-01"})
        assert classify(body, {}, ORDER).event.next_payment_date is None

    @pytest.mark.unit
    def test_event_without_identity_is_still_event(self):
        body = json.dumps({"id": 5, "status": "processing", "customer_id": 0})
        result = classify(body, {}, ORDER)
        assert result.is_event
        assert result.event.customer_identity is None

    @pytest.mark.unit
    def test_headers_are_optional(self):
        body = json.dumps({"id": 5, "status": "processing"})
        assert classify(body, None, ORDER).is_event


class TestCustomerIdentityFallback:

    @pytest.mark.unit
    @pytest.mark.parametrize("payload, expected", [
        ({"billing": {"email": "bill@x.com"}, "customer_email": "c@x.com"}, "bill@x.com"),
        ({"billing": {"email": ""}, "customer_email": "c@x.com"}, "c@x.com"),
        ({"customer_email": "", "email": "e@x.com"}, "e@x.com"),
        ({"billing": {}, "customer_id": 42}, "42"),
        ({"billing": "not-a-dict", "customer_id": "42"}, "42"),
        ({"customer_id": 0}, None),
        ({}, None),
    ])
    def test_fallback_chain(self, payload, expected):
        assert extract_customer_identity(payload) == expected


class TestDisplayNumberFallback:

    @pytest.mark.unit
    @pytest.mark.parametrize("payload, expected", [
        ({"number": "A-100", "order_number": "200", "id": 300}, "A-100"),
        ({"number": "", "order_number": "200", "id": 300}, "200"),
        ({"order_number": None, "id": 300}, "300"),
    ])
    def test_fallback_chain(self, payload, expected):
        assert extract_display_number(payload) == expected


class TestWebhookHeaders:

    @pytest.mark.unit
    def test_informational_headers(self):
        headers = {
            "X-WC-Webhook-Topic": "order.updated",
            "X-WC-Webhook-Source": "https://shop.example.com/",
            "X-WC-Webhook-Delivery-ID": "abc",
        }
        assert webhook_headers(headers) == {
            "topic": "order.updated",
            "source": "https://shop.example.com/",
            "delivery_id": "abc",
        }


class TestClassifierProperties:
    """הסיווג הוא פונקציה טוטאלית: כל קלט מקבל סוג, ואף פעם לא זורק"""

    @pytest.mark.unit
    @given(body=one_of(text(max_size=300), binary(max_size=300).map(lambda b: b.decode("latin-1"))))
    @h_settings(max_examples=200)
    def test_never_raises(self, body):
        result = classify(body, {}, ORDER)
        assert result.kind in set(ClassificationKind)
        assert (result.event is not None) == (result.kind is ClassificationKind.EVENT)

    @pytest.mark.unit
    @given(
        resource_id=integers(min_value=1, max_value=10**9),
        status=sampled_from(["pending", "processing", "completed", "Cancelled", "ON-HOLD"]),
        extra=dictionaries(
            sampled_from(["number", "order_number", "customer_id", "email"]),
            one_of(none(), text(max_size=20), integers(min_value=0, max_value=1000)),
            max_size=4,
        ),
    )
    def test_object_with_id_and_status_is_event(self, resource_id, status, extra):
        payload = {**extra, "id": resource_id, "status": status}
        result = classify(json.dumps(payload), {}, ORDER)

        assert result.kind is ClassificationKind.EVENT
        assert result.event.resource_id == str(resource_id)
        assert result.event.status == status.lower()
        assert result.event.display_number
