"""
Tests for order reference extraction from inbound events.
"""
import json
import pytest

from order_extractor import InboundEvent, OrderExtractor, OrderReference

DEFAULT_URL = "https://default.retailcrm.ru"


class TestInboundEvent:
    """Test cases for payload parsing"""

    def test_json_body(self):
        event = InboundEvent.from_payload('{"order": {"id": 5}}', "application/json")

        assert event.body == {"order": {"id": 5}}

    def test_malformed_json_keeps_raw_text(self):
        event = InboundEvent.from_payload('{"order": {"id": 12345', "application/json")

        assert event.body is None
        assert event.raw_text == '{"order": {"id": 12345'

    def test_form_body_with_json_order_field(self):
        raw = "order=" + json.dumps({"id": 77, "status": "approved"})
        event = InboundEvent.from_payload(raw, "application/x-www-form-urlencoded")

        assert event.body["order"] == {"id": 77, "status": "approved"}

    def test_form_body_strips_stray_quotes(self):
        event = InboundEvent.from_payload("`order_id`='9001'", "application/x-www-form-urlencoded")

        assert event.body == {"order_id": "9001"}

    def test_empty_body(self):
        event = InboundEvent.from_payload("", "", query={"id": "1"})

        assert event.body is None
        assert event.query == {"id": "1"}

    def test_snapshot(self):
        event = InboundEvent.from_snapshot({"id": 3, "status": "new"}, "https://a.retailcrm.ru")

        assert event.body == {"order": {"id": 3, "status": "new"}, "account_url": "https://a.retailcrm.ru"}


class TestOrderExtractor:
    """Test cases for the ordered extraction strategies"""

    @pytest.fixture
    def extractor(self):
        return OrderExtractor(default_account_url=DEFAULT_URL)

    def test_embedded_order(self, extractor):
        order = {"id": 501, "number": "A-501", "status": "approved", "customer": {"firstName": "Ama"}}
        ref = extractor.extract(InboundEvent(body={"order": order}))

        assert ref.strategy == "embedded_order"
        assert ref.id == 501
        assert ref.number == "A-501"
        assert ref.status_hint == "approved"
        assert ref.order is order

    def test_empty_embedded_order_falls_through_to_flat_fields(self, extractor):
        ref = extractor.extract(InboundEvent(body={"order": {}, "orderNumber": "B-7", "orderStatus": "approved"}))

        assert ref.strategy == "flat_fields"
        assert ref.number == "B-7"
        assert ref.id is None
        assert ref.status_hint == "approved"
        assert ref.order is None

    def test_flat_fields_snake_case(self, extractor):
        ref = extractor.extract(InboundEvent(body={"order_id": "42", "order_status": "new"}))

        assert ref.strategy == "flat_fields"
        assert ref.id == 42
        assert ref.status_hint == "new"

    def test_flat_fields_numeric_number(self, extractor):
        ref = extractor.extract(InboundEvent(body={"number": 1005}))

        assert ref.number == "1005"

    def test_query_params_strip_quoting(self, extractor):
        event = InboundEvent(query={"`order_id`": "'900'", '"status"': "`approved`"})
        ref = extractor.extract(event)

        assert ref.strategy == "query_params"
        assert ref.id == 900
        assert ref.status_hint == "approved"

    def test_body_takes_priority_over_query(self, extractor):
        event = InboundEvent(body={"order_id": 1}, query={"order_id": "2"})

        assert extractor.extract(event).id == 1

    def test_raw_scan_last_resort(self, extractor):
        event = InboundEvent(raw_text='garbage {order: 123456, status: approv')
        ref = extractor.extract(event)

        assert ref.strategy == "raw_scan"
        assert ref.id == 123456
        assert ref.number is None

    def test_raw_scan_ignores_short_numbers(self, extractor):
        assert extractor.extract(InboundEvent(raw_text="order 12")) is None

    @pytest.mark.parametrize("event", [
        InboundEvent(),
        InboundEvent(body={"status": "approved"}),
        InboundEvent(body={"order": {"status": "approved"}}),
        InboundEvent(query={"status": "approved"}),
        InboundEvent(raw_text="nothing useful here"),
    ])
    def test_no_reference(self, extractor, event):
        assert extractor.extract(event) is None

    def test_non_numeric_id_ignored(self, extractor):
        assert extractor.extract(InboundEvent(body={"id": "abc"})) is None


class TestAccountUrlExtraction:
    """Test cases for opportunistic account URL detection"""

    @pytest.fixture
    def extractor(self):
        return OrderExtractor(default_account_url=DEFAULT_URL)

    def test_body_field(self, extractor):
        ref = extractor.extract(InboundEvent(body={"id": 1, "accountUrl": "https://a.retailcrm.ru"}))

        assert ref.account_url == "https://a.retailcrm.ru"
        assert ref.account_source == "body"

    def test_query_field(self, extractor):
        ref = extractor.extract(InboundEvent(query={"id": "1", "crm_url": "'https://q.retailcrm.ru'"}))

        assert ref.account_url == "https://q.retailcrm.ru"
        assert ref.account_source == "query"

    def test_custom_header(self, extractor):
        event = InboundEvent(body={"id": 1}, headers={"x-retailcrm-url": "https://h.retailcrm.ru"})
        ref = extractor.extract(event)

        assert ref.account_url == "https://h.retailcrm.ru"
        assert ref.account_source == "header"

    def test_referer_header(self, extractor):
        event = InboundEvent(body={"id": 1}, headers={"Referer": "https://r.retailcrm.ru/admin/orders/1/edit"})
        ref = extractor.extract(event)

        assert ref.account_url == "https://r.retailcrm.ru"
        assert ref.account_source == "referer"

    def test_default_account_assumed(self, extractor):
        ref = extractor.extract(InboundEvent(query={"order_id": "900", "status": "approved"}))

        assert ref.account_url == DEFAULT_URL
        assert ref.account_source == "default"

    def test_reference_label(self):
        assert OrderReference(id=5).label == "5"
        assert OrderReference(id=5, number="N-5").label == "N-5"
        assert not OrderReference().is_resolvable
