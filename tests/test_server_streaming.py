"""Tests for the /research/stream SSE endpoint."""

import asyncio
import json
import time
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from conftest import sample_plan
from fastapi import FastAPI

from deep_research.events import ProgressEvent, ProgressKind, ProgressStatus
from deep_research.exceptions import PlanGenerationError
from deep_research.models import ResearchDepth, ResearchResult
from deep_research.server import get_app


def _make_research_result(topic: str = "test") -> ResearchResult:
    return ResearchResult(
        topic=topic,
        depth=ResearchDepth.BASIC,
        plan=sample_plan(),
        completed_steps=3,
        total_steps=3,
    )


def _progress(card_id: str, state: str | None = None, **payload) -> ProgressEvent:
    if state is not None:
        payload["state"] = state
    return ProgressEvent(
        id=card_id,
        kind=ProgressKind.PROGRESS if card_id == "research-progress" else ProgressKind.WEB,
        status=ProgressStatus.RUNNING,
        title="Research Progress",
        message="...",
        timestamp=1760000000000,
        overwrite=True,
        payload=payload or None,
    )


@pytest.fixture
def app() -> FastAPI:
    return get_app()


async def _collect_events(response: httpx.Response) -> list[tuple[str, dict]]:
    """Parse SSE stream into list of (event_type, data) tuples."""
    events: list[tuple[str, dict]] = []
    current_event = None
    current_data = None

    async for line in response.aiter_lines():
        if line.startswith("event:"):
            current_event = line.split(": ", 1)[1]
        elif line.startswith("data:"):
            current_data = json.loads(line.split(": ", 1)[1])
        elif line == "" and current_event and current_data is not None:
            events.append((current_event, current_data))
            current_event = None
            current_data = None

    return events


async def _stream(app: FastAPI, body: dict | None = None) -> list[tuple[str, dict]]:
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        async with client.stream("POST", "/research/stream", json=body or {"topic": "image formats"}) as response:
            assert response.status_code == 200
            assert response.headers["content-type"].startswith("text/event-stream")
            return await _collect_events(response)


class TestResearchStreamEndpoint:
    @pytest.mark.asyncio
    async def test__progress_events__stream_as_research_updates(self, app: FastAPI) -> None:
        async def workflow_with_events(*args, event_callback=None, **kwargs):
            await event_callback(_progress("research-progress", "planning"))
            await event_callback(_progress("search-web-0", results=[]))
            await asyncio.sleep(0.1)
            return _make_research_result("image formats")

        with patch("deep_research.server.run_research_workflow", new=workflow_with_events):
            events = await _stream(app)

        assert [event_type for event_type, _ in events] == ["research_update", "research_update", "complete"]
        assert events[0][1]["id"] == "research-progress"
        assert events[1][1]["payload"] == {"results": []}
        assert "completedSteps" not in events[1][1]

    @pytest.mark.asyncio
    async def test__complete_event__carries_full_result(self, app: FastAPI) -> None:
        with patch("deep_research.server.run_research_workflow", new=AsyncMock(return_value=_make_research_result("t"))):
            events = await _stream(app, {"topic": "t"})

        complete = [data for event_type, data in events if event_type == "complete"]
        assert len(complete) == 1
        assert complete[0]["topic"] == "t"
        assert complete[0]["total_steps"] == 3
        assert {"plan", "results", "analyses", "timings"} <= complete[0].keys()

    @pytest.mark.asyncio
    async def test__request_options__are_forwarded(self, app: FastAPI) -> None:
        mock_workflow = AsyncMock(return_value=_make_research_result())
        with patch("deep_research.server.run_research_workflow", new=mock_workflow):
            await _stream(app, {"topic": "t", "depth": "advanced", "preferred_domains": ["web.dev"]})

        args, kwargs = mock_workflow.await_args
        assert args == ("t", ResearchDepth.ADVANCED)
        assert kwargs["preferred_domains"] == ["web.dev"]
        assert callable(kwargs["event_callback"])

    @pytest.mark.asyncio
    async def test__workflow_error__emits_error_with_failed_state(self, app: FastAPI) -> None:
        async def failing_workflow(*args, event_callback=None, **kwargs):
            await event_callback(_progress("research-progress", "planning"))
            await event_callback(_progress("research-progress", "done", failed_state="planning"))
            raise PlanGenerationError(topic="t", reason="model down")

        with patch("deep_research.server.run_research_workflow", new=failing_workflow):
            events = await _stream(app)

        event_types = [event_type for event_type, _ in events]
        assert event_types[-1] == "error"
        assert "complete" not in event_types
        assert events[-1][1] == {
            "error": "Unable to create research plan. Please try a different topic.",
            "error_type": "PlanGenerationError",
            "state": "planning",
        }

    @pytest.mark.asyncio
    async def test__error_mid_run__reports_last_state(self, app: FastAPI) -> None:
        async def workflow_with_error(*args, event_callback=None, **kwargs):
            await event_callback(_progress("research-progress", "searching"))
            raise RuntimeError("unexpected")

        with patch("deep_research.server.run_research_workflow", new=workflow_with_error):
            events = await _stream(app)

        error = events[-1][1]
        assert error["state"] == "searching"
        assert error["error_type"] == "RuntimeError"
        assert error["error"] == "An error occurred processing your request."

    @pytest.mark.asyncio
    async def test__invalid_topic__returns_422(self, app: FastAPI) -> None:
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post("/research/stream", json={"topic": ""})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test__stream__enforces_timeout(self, app: FastAPI) -> None:
        async def slow_workflow(*args, **kwargs):
            await asyncio.sleep(700)
            return _make_research_result()

        with patch("deep_research.server.run_research_workflow", new=slow_workflow):
            with patch("deep_research.server.MAX_DURATION", 1):
                start = time.time()
                events = await _stream(app)
                elapsed = time.time() - start

        assert elapsed < 5, "Timeout took too long"
        assert events[-1][0] == "error"
        assert events[-1][1]["error_type"] == "TimeoutError"
        assert events[-1][1]["state"] == "planning"

    @pytest.mark.asyncio
    async def test__stream__sends_heartbeats(self, app: FastAPI) -> None:
        async def slow_workflow(*args, **kwargs):
            await asyncio.sleep(1.5)
            return _make_research_result()

        with patch("deep_research.server.run_research_workflow", new=slow_workflow):
            with patch("deep_research.server.HEARTBEAT_INTERVAL", 0.4):
                async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
                    heartbeat_count = 0
                    async with client.stream("POST", "/research/stream", json={"topic": "t"}) as response:
                        async for line in response.aiter_lines():
                            if line == ": keepalive":
                                heartbeat_count += 1

        assert heartbeat_count >= 2, f"Only got {heartbeat_count} heartbeats"

    @pytest.mark.asyncio
    async def test__workflow__is_cleaned_up_after_stream(self, app: FastAPI) -> None:
        workflow_finished = asyncio.Event()

        async def monitored_workflow(*args, event_callback=None, **kwargs):
            try:
                await event_callback(_progress("research-progress", "planning"))
                await asyncio.sleep(0.1)
                return _make_research_result()
            finally:
                workflow_finished.set()

        with patch("deep_research.server.run_research_workflow", new=monitored_workflow):
            await _stream(app)

        assert workflow_finished.is_set()

    @pytest.mark.asyncio
    async def test__client_disconnect__does_not_raise(self, app: FastAPI) -> None:
        async def slow_workflow(*args, event_callback=None, **kwargs):
            await event_callback(_progress("research-progress", "planning"))
            await asyncio.sleep(1)
            return _make_research_result()

        with patch("deep_research.server.run_research_workflow", new=slow_workflow):
            async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
                async with client.stream("POST", "/research/stream", json={"topic": "t"}) as response:
                    async for line in response.aiter_lines():
                        if line:
                            break

    @pytest.mark.asyncio
    async def test__concurrent_streams__each_complete(self, app: FastAPI) -> None:
        async def workflow_with_delay(topic, *args, **kwargs):
            await asyncio.sleep(0.2)
            return _make_research_result(topic)

        with patch("deep_research.server.run_research_workflow", new=workflow_with_delay):
            results = await asyncio.gather(*(_stream(app, {"topic": f"topic {i}"}) for i in range(3)))

        for index, events in enumerate(results):
            complete = [data for event_type, data in events if event_type == "complete"]
            assert complete[0]["topic"] == f"topic {index}"
