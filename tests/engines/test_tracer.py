"""COMMISSION_ENGINE_TRACE decorator and input fingerprints."""

from datetime import datetime, timezone

from commission_engines.tracer import compute_input_fingerprint, traced_engine
from commission_kernel.domain.plans import PaymentKind


class TestFingerprint:

    def test_deterministic(self):
        kwargs = {"gross_cents": 800, "payment_kind": PaymentKind.RECURRING}
        fields = ("gross_cents", "payment_kind")
        assert compute_input_fingerprint(fields, kwargs) == compute_input_fingerprint(fields, dict(kwargs))

    def test_sensitive_to_values(self):
        fields = ("gross_cents",)
        assert compute_input_fingerprint(fields, {"gross_cents": 800}) != compute_input_fingerprint(
            fields, {"gross_cents": 801}
        )

    def test_enum_and_value_equivalent(self):
        fields = ("payment_kind",)
        assert compute_input_fingerprint(fields, {"payment_kind": PaymentKind.UPFRONT}) == (
            compute_input_fingerprint(fields, {"payment_kind": "upfront"})
        )

    def test_missing_field_is_null(self):
        fields = ("recorded_at",)
        assert compute_input_fingerprint(fields, {}) == compute_input_fingerprint(
            fields, {"recorded_at": None}
        )
        at = datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert compute_input_fingerprint(fields, {"recorded_at": at}) != compute_input_fingerprint(fields, {})


class TestTracedEngine:

    def test_emits_trace_and_returns_result(self, captured_logs):
        @traced_engine("doubler", "2.1", fingerprint_fields=("value",))
        def double(*, value):
            return value * 2

        assert double(value=21) == 42

        trace = [r for r in captured_logs() if r["message"] == "COMMISSION_ENGINE_TRACE"][-1]
        assert trace["engine_name"] == "doubler"
        assert trace["engine_version"] == "2.1"
        assert trace["logger"] == "commission_kernel.engines.tracer"
        assert trace["function"].endswith("double")
        assert trace["duration_ms"] >= 0
