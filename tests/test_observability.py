import json
import logging
import unittest

from lifecycle_engine.observability import (
    JsonLogFormatter,
    MetricsRegistry,
    set_log_request_id,
)


class JsonLogFormatterTest(unittest.TestCase):
    def tearDown(self) -> None:
        set_log_request_id(None)

    def test_background_record_carries_extra_fields(self) -> None:
        set_log_request_id("req-bg-1")
        record = logging.LogRecord(
            name="lifecycle.events",
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg="handler failed for %s",
            args=("QuoteAccepted",),
            exc_info=None,
        )
        record.quote_id = "q-1"

        payload = json.loads(JsonLogFormatter().format(record))

        self.assertEqual(payload["level"], "warning")
        self.assertEqual(payload["logger"], "lifecycle.events")
        self.assertEqual(payload["message"], "handler failed for QuoteAccepted")
        self.assertEqual(payload["request_id"], "req-bg-1")
        self.assertEqual(payload["quote_id"], "q-1")
        self.assertTrue(payload["ts"].endswith("Z"))


class MetricsRegistryTest(unittest.TestCase):
    def test_snapshot_aggregates_http_and_lifecycle_counters(self) -> None:
        registry = MetricsRegistry()
        registry.observe_http("get", "/api/rfqs/<rfq_id>", 200, 4.0)
        registry.observe_http("GET", "/api/rfqs/<rfq_id>", 404, 2.0)
        registry.observe_domain_event_emitted("QuoteAccepted")
        registry.observe_lifecycle_transition("quote", "ACTIVE", "ACCEPTED")
        registry.observe_inventory_units_created(3)
        registry.observe_inventory_units_created(0)

        snapshot = registry.snapshot()

        self.assertEqual(snapshot["requests_total"], 2)
        self.assertEqual(snapshot["errors_total"], 1)
        self.assertEqual(snapshot["by_status"], {"200": 1, "404": 1})
        self.assertEqual(snapshot["by_route"][0]["route"], "GET /api/rfqs/<rfq_id>")
        self.assertEqual(snapshot["by_route"][0]["max_latency_ms"], 4.0)
        self.assertEqual(snapshot["domain_events"]["by_type"], {"QuoteAccepted": 1})
        self.assertEqual(
            snapshot["lifecycle"]["transitions"],
            [{"entity": "quote", "from": "ACTIVE", "to": "ACCEPTED", "count": 1}],
        )
        self.assertEqual(snapshot["lifecycle"]["inventory_units_created_total"], 3)

        registry.reset()
        self.assertEqual(registry.snapshot()["requests_total"], 0)


if __name__ == "__main__":
    unittest.main()
