import pytest

from jobrelay.engine import CanonicalResult, extract_request_id, normalize_progress, normalize_response
from jobrelay.engine.normalizer import INVALID_RESPONSE, INVALID_RESPONSE_MESSAGE, NO_CONTENT_MESSAGE

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    "payload",
    [None, 42, 3.5, ["a"], object(), b"bytes"],
)
def test_unexpected_shapes_are_invalid(payload):
    result = normalize_response(payload)
    assert result == INVALID_RESPONSE
    assert result.success is False
    assert result.error == INVALID_RESPONSE_MESSAGE


def test_empty_mapping_is_failure_with_no_content():
    result = normalize_response({})
    assert result.success is False
    assert result.result == NO_CONTENT_MESSAGE


def test_plain_string_is_success():
    result = normalize_response("plain string")
    assert result == CanonicalResult(success=True, result="plain string", error="")


@pytest.mark.parametrize("text", ["Error: model crashed", "Operation cancelled by user"])
def test_string_with_failure_sentinel(text):
    result = normalize_response(text)
    assert result.success is False
    assert result.error == text


def test_success_with_blank_result_flips_to_failure():
    result = normalize_response({"success": True, "result": ""})
    assert result.success is False
    assert result.result == NO_CONTENT_MESSAGE
    assert result.error == NO_CONTENT_MESSAGE


def test_success_with_error_flips_to_failure():
    result = normalize_response({"success": True, "result": "partial", "error": "boom"})
    assert result.success is False
    assert result.result == "boom"
    assert result.error == "boom"


def test_pascal_case_fields():
    result = normalize_response({"Success": True, "Result": "x", "ProcessingTime": 120})
    assert result == CanonicalResult(success=True, result="x", error="", processing_time=120.0)


def test_alias_fields():
    result = normalize_response(
        {"success": "false", "response": "", "errorMessage": "quota", "processing_time": "5.5"}
    )
    assert result.success is False
    assert result.error == "quota"
    assert result.processing_time == 5.5


def test_missing_flag_inferred_from_content():
    assert normalize_response({"result": "ok"}).success is True


def test_explicit_failure_keeps_result_text():
    result = normalize_response({"Success": False, "Result": "Error: nope", "Error": "Error: nope"})
    assert result.success is False
    assert result.failure_reason("fallback") == "Error: nope"


def test_failure_reason_falls_back():
    result = CanonicalResult(success=False, result="  ", error="")
    assert result.failure_reason("Failed to generate response") == "Failed to generate response"


@pytest.mark.parametrize("value", [True, -1, "abc", float("nan")])
def test_unusable_processing_time_is_dropped(value):
    result = normalize_response({"success": True, "result": "x", "processingTime": value})
    assert result.processing_time is None


def test_non_string_result_is_coerced():
    result = normalize_response({"success": True, "result": 12})
    assert result.result == "12"


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"requestId": "r1"}, "r1"),
        ({"RequestID": "r2"}, "r2"),
        ({"request_id": " r3 "}, "r3"),
        ({"requestId": None, "RequestID": "r4"}, "r4"),
        ({"requestId": ""}, None),
        ("r5", None),
    ],
)
def test_extract_request_id(payload, expected):
    assert extract_request_id(payload) == expected


def test_progress_is_parsed_and_clamped():
    event = normalize_progress(
        {"RequestID": "r1", "Progress": "140", "Status": "generating", "Message": "hi"}
    )
    assert event.request_id == "r1"
    assert event.progress == 100
    assert event.has_progress is True
    assert event.status == "generating"
    assert event.message == "hi"


def test_progress_without_numeric_value_defaults_to_zero():
    event = normalize_progress({"requestId": "r1", "progress": "n/a"})
    assert event.progress == 0
    assert event.has_progress is False


@pytest.mark.parametrize("payload", [None, "x", {"progress": 50}])
def test_progress_without_request_id_is_rejected(payload):
    assert normalize_progress(payload) is None
