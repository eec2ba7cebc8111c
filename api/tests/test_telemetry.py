from opentelemetry.sdk.trace import TracerProvider

from saved_items.core.telemetry import _parse_headers, report_exception


def test_parse_headers_skips_malformed_pairs() -> None:
    assert _parse_headers("Authorization=Bearer abc, x-team = saves ,broken,=empty") == {
        "Authorization": "Bearer abc",
        "x-team": "saves",
    }
    assert _parse_headers(None) == {}


def test_report_exception_records_on_active_span() -> None:
    tracer = TracerProvider().get_tracer(__name__)

    with tracer.start_as_current_span("emit") as span:
        report_exception(RuntimeError("sink down"))

    assert span.status.is_ok is False
    assert span.events[0].name == "exception"


def test_report_exception_without_span_is_a_no_op() -> None:
    report_exception(RuntimeError("ignored"))
