"""Unit tests for correlation ID handling."""

import asyncio
import uuid

from ceremony_scheduler.infrastructure.observability.correlation import (
    correlation_id_processor,
    ensure_correlation_id,
    generate_correlation_id,
    get_correlation_id,
    set_correlation_id,
)


class TestCorrelationId:
    def test_generated_ids_are_uuids(self) -> None:
        uuid.UUID(generate_correlation_id())

    async def test_ensure_generates_once(self) -> None:
        async def run() -> tuple[str, str]:
            first = ensure_correlation_id()
            return first, ensure_correlation_id()

        first, second = await asyncio.create_task(run())
        assert first
        assert first == second

    async def test_tasks_do_not_share_ids(self) -> None:
        async def run() -> str:
            return ensure_correlation_id()

        ids = await asyncio.gather(
            asyncio.create_task(run()), asyncio.create_task(run())
        )
        assert ids[0] != ids[1]

    async def test_set_and_get(self) -> None:
        async def run() -> str:
            set_correlation_id("abc")
            return get_correlation_id()

        assert await asyncio.create_task(run()) == "abc"


class TestCorrelationIdProcessor:
    async def test_adds_current_id(self) -> None:
        async def run() -> dict[str, object]:
            set_correlation_id("abc")
            return correlation_id_processor(None, "info", {"event": "x"})

        assert (await asyncio.create_task(run()))["correlation_id"] == "abc"

    async def test_keeps_explicit_id(self) -> None:
        async def run() -> dict[str, object]:
            set_correlation_id("abc")
            return correlation_id_processor(None, "info", {"correlation_id": "explicit"})

        assert (await asyncio.create_task(run()))["correlation_id"] == "explicit"

    async def test_absent_without_id(self) -> None:
        async def run() -> dict[str, object]:
            set_correlation_id("")
            return correlation_id_processor(None, "info", {"event": "x"})

        assert "correlation_id" not in await asyncio.create_task(run())
