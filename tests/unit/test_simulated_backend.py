import asyncio

import pytest

from jobrelay.backend.simulator import SimulatedBackend
from jobrelay.engine import AssistantEngine, LocalEventBus, OperationStatus

pytestmark = pytest.mark.integration

CHAT_REQUEST = "inference-completion-request"
CHAT_RESPONSE = "inference-completion-response"
CHAT_PROGRESS = "inference-completion-progress"
PARSER_RESPONSE = "add-document-response"
QA_RESPONSE = "query-document-response"


def _run(coro):
    return asyncio.run(coro)


def _wire(**backend_options):
    bus = LocalEventBus()
    backend = SimulatedBackend(bus, **backend_options)
    engine = AssistantEngine(transport=bus, cancel_backend=backend.cancel_job)
    backend.start()
    responses: list = []
    progress: list = []
    bus.subscribe(CHAT_RESPONSE, responses.append)
    bus.subscribe(CHAT_PROGRESS, progress.append)
    return bus, backend, engine, responses, progress


def test_round_trip_through_backend():
    bus, backend, engine, responses, progress = _wire()

    async def scenario():
        request_id = engine.submit("Hello")
        await backend.drain()
        return request_id

    request_id = _run(scenario())

    assert [p["status"] for p in progress] == [
        "starting",
        "processing",
        "generating",
        "saving",
        "completed",
    ]
    assert [p["progress"] for p in progress] == [0, 20, 50, 80, 100]
    assert responses[0]["RequestID"] == request_id
    assert responses[0]["Success"] is True
    final = engine.messages("chat")[-1]
    assert (final.role, final.content, final.is_loading) == ("assistant", "Echo: Hello", False)
    assert final.processing_time is not None
    assert engine.is_busy("chat") is False
    assert engine.progress("chat") is None
    assert backend.requests[0]["prompt"] == "Hello"


def test_cancel_stops_job_and_drops_its_response():
    bus, backend, engine, responses, progress = _wire(step_delay=0.05)

    async def scenario():
        engine.submit("Hello")
        await asyncio.sleep(0.01)
        operation = await engine.cancel()
        await backend.drain()
        return operation

    operation = _run(scenario())

    assert operation.status is OperationStatus.CANCELLED
    assert responses[0]["Success"] is False
    assert responses[0]["Result"] == "Operation cancelled by user"
    assert "completed" not in [p["status"] for p in progress]
    errors = [m for m in engine.messages("chat") if m.role == "error"]
    assert len(errors) == 1
    assert errors[0].content == "Generation cancelled by user"
    assert all(m.content != "Operation cancelled by user" for m in engine.messages("chat"))


def test_async_responder_failure_is_reported():
    async def responder(prompt, request):
        await asyncio.sleep(0)
        return f"Error: cannot parse {prompt}"

    bus, backend, engine, responses, _ = _wire(responder=responder)

    async def scenario():
        engine.submit("file.pdf")
        await backend.drain()

    _run(scenario())

    assert responses[0]["Success"] is False
    assert responses[0]["Error"] == "Error: cannot parse file.pdf"
    assert engine.messages("chat")[-1].content == "Error: cannot parse file.pdf"


def test_responder_exception_becomes_failure():
    def responder(prompt, request):
        raise ValueError("bad input")

    bus, backend, engine, responses, _ = _wire(responder=responder)

    async def scenario():
        engine.submit("x")
        await backend.drain()

    _run(scenario())

    assert responses[0]["Error"] == "Error: bad input"
    assert engine.registry.last("chat").status is OperationStatus.FAILED


def test_backend_without_running_loop_answers_immediately():
    bus, backend, engine, responses, _ = _wire()

    request_id = engine.submit("Hello")

    assert request_id is not None
    assert responses == [
        {"RequestID": request_id, "Success": False, "Error": "Backend is not running"}
    ]
    assert engine.messages("chat")[-1].content == "Error: Backend is not running"
    assert engine.is_busy("chat") is False


def test_invalid_request_payload():
    bus, backend, engine, responses, _ = _wire()
    bus.emit(CHAT_REQUEST, "junk")
    assert responses == [
        {"RequestID": "", "Success": False, "Error": "Invalid request data format"}
    ]


def test_parser_scope_uses_source_field():
    bus, backend, engine, _, _ = _wire()
    parser_responses: list = []
    bus.subscribe(PARSER_RESPONSE, parser_responses.append)

    async def scenario():
        engine.submit("/tmp/report.pdf", scope="parser")
        await backend.drain()

    _run(scenario())

    assert backend.requests[0]["source"] == "/tmp/report.pdf"
    assert parser_responses[0]["Result"] == "Echo: /tmp/report.pdf"
    messages = engine.messages("parser")
    assert messages[-1].content == "Echo: /tmp/report.pdf"


def test_stop_unsubscribes():
    bus, backend, engine, _, _ = _wire()
    backend.stop()
    assert bus.handler_count(CHAT_REQUEST) == 0


def test_cancel_job_when_idle():
    bus, backend, engine, _, _ = _wire()
    assert _run(backend.cancel_job("chat")) == {"ok": True, "scope": "chat", "cancelled": 0}
    assert _run(backend.cancel_job()) == {"ok": True, "scope": None, "cancelled": 0}


def test_cancelling_one_scope_leaves_other_scope_running():
    bus, backend, engine, responses, _ = _wire(step_delay=0.02)
    qa_responses: list = []
    bus.subscribe(QA_RESPONSE, qa_responses.append)

    async def scenario():
        engine.submit("hello", scope="chat")
        engine.submit("totals?", scope="documentQA")
        await asyncio.sleep(0.01)
        await engine.cancel("chat")
        await backend.drain()

    _run(scenario())

    assert responses[0]["Success"] is False
    assert qa_responses[0]["Success"] is True
    final = engine.messages("documentQA")[-1]
    assert (final.role, final.content) == ("assistant", "Echo: totals?")
    assert engine.registry.last("documentQA").status is OperationStatus.COMPLETED
    assert engine.registry.last("chat").status is OperationStatus.CANCELLED


def test_cancel_survives_a_job_started_in_another_scope():
    bus, backend, engine, responses, _ = _wire(step_delay=0.02)
    qa_responses: list = []
    bus.subscribe(QA_RESPONSE, qa_responses.append)

    async def scenario():
        engine.submit("hello", scope="chat")
        await asyncio.sleep(0.01)
        await engine.cancel("chat")
        engine.submit("totals?", scope="documentQA")
        await backend.drain()

    _run(scenario())

    assert responses[0]["Success"] is False
    assert responses[0]["Result"] == "Operation cancelled by user"
    assert qa_responses[0]["Result"] == "Echo: totals?"
