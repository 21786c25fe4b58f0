"""Tests for the engine tracer decorator."""

from retail_engines.tracer import compute_input_fingerprint, traced_engine


class TestFingerprint:
    """Tests for input fingerprints."""

    def test_deterministic_and_order_insensitive_for_dicts(self):
        a = compute_input_fingerprint(("payload",), {"payload": {"x": 1, "y": 2}})
        b = compute_input_fingerprint(("payload",), {"payload": {"y": 2, "x": 1}})

        assert a == b
        assert len(a) == 16

    def test_sequences_keep_order(self):
        a = compute_input_fingerprint(("items",), {"items": [1, 2]})
        b = compute_input_fingerprint(("items",), {"items": [2, 1]})

        assert a != b

    def test_missing_field_recorded_as_null(self):
        assert compute_input_fingerprint(("absent",), {}) == compute_input_fingerprint(
            ("absent",), {"absent": None}
        )


class TestTracedEngine:
    """Tests for the RETAIL_ENGINE_TRACE record."""

    def test_emits_trace(self, captured_logs):
        @traced_engine("doubler", "2.1", fingerprint_fields=("value",))
        def double(*, value):
            return value * 2

        assert double(value=21) == 42

        [trace] = [r for r in captured_logs() if r["message"] == "RETAIL_ENGINE_TRACE"]
        assert trace["engine_name"] == "doubler"
        assert trace["engine_version"] == "2.1"
        assert trace["input_fingerprint"] == compute_input_fingerprint(("value",), {"value": 21})
        assert trace["function"].endswith("double")

    def test_no_fingerprint_fields(self, captured_logs):
        @traced_engine("noop", "1.0")
        def noop():
            return None

        noop()

        [trace] = [r for r in captured_logs() if r["message"] == "RETAIL_ENGINE_TRACE"]
        assert trace["input_fingerprint"] == ""
