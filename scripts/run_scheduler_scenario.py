#!/usr/bin/env python3
"""Contribution scheduler walkthrough on an in-memory ledger.

Runs the two reference scenarios against a fully wired scheduler with a
controllable clock:

1. Estimate:  queue [A, B, C] from cold start; A reports 120 s + 30 s,
   B is promoted and C's estimated wait becomes 150 s.
2. Timeout:   A overruns the fixed 3600 s window, the monitor evicts it,
   A's re-join is refused until the cooldown elapses and then lands at
   the back of the queue.

Usage:
    python scripts/run_scheduler_scenario.py
    python scripts/run_scheduler_scenario.py --scenario timeout -v
    python scripts/run_scheduler_scenario.py --json
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone

from dotenv import load_dotenv

from ceremony_scheduler.bootstrap.container import (
    SchedulerContainer,
    build_in_memory_scheduler,
)
from ceremony_scheduler.bootstrap.logging import configure_structlog
from ceremony_scheduler.config.scheduler_config import SchedulerConfig
from ceremony_scheduler.domain.errors.retry import NoRetryYetError
from ceremony_scheduler.domain.models.ceremony import Ceremony, Circuit, TimeoutPolicy
from tests.helpers.fake_time_authority import FakeTimeAuthority

load_dotenv()

BASE_TIME = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
CIRCUIT_ID = "circuit-1"


def print_section(title: str) -> None:
    """Print a section header."""
    print(f"\n{'=' * 60}")
    print(title)
    print(f"{'=' * 60}")


async def print_queue(container: SchedulerContainer, ceremony_id: str, as_json: bool) -> None:
    """Print the queue and every queued participant's observation."""
    queue = await container.ledger.read_queue(CIRCUIT_ID)
    avg = queue.avg_timings
    print(
        f"  queue v{queue.version}: {list(queue.contributors)}  "
        f"completed={queue.completed_contributions} failed={queue.failed_contributions}  "
        f"avg=({avg.contribution_seconds:g}s, {avg.verification_seconds:g}s)"
    )
    for participant_id in queue.contributors:
        observation = await container.coordinator.observe(ceremony_id, CIRCUIT_ID, participant_id)
        if as_json:
            print(f"    {observation.model_dump_json()}")
            continue
        wait = observation.estimated_wait_seconds
        print(
            f"    {participant_id:4s} position={observation.position} "
            f"current={observation.is_current} "
            f"estimate={'unavailable' if wait is None else f'{wait}s'}"
        )


async def new_ceremony(ceremony_id: str, verbose: bool) -> tuple[SchedulerContainer, FakeTimeAuthority]:
    """Wire a scheduler and open a single-circuit ceremony with A, B, C queued."""
    time_authority = FakeTimeAuthority(frozen_at=BASE_TIME)
    container = build_in_memory_scheduler(
        time_authority=time_authority,
        config=SchedulerConfig.from_environment(),
    )
    ceremony = Ceremony(
        ceremony_id=ceremony_id,
        title=f"Walkthrough {ceremony_id}",
        start_date=BASE_TIME,
        end_date=BASE_TIME + timedelta(days=7),
        coordinator_id="coordinator",
        circuits=(Circuit(circuit_id=CIRCUIT_ID, sequence_position=1, name="Circuit 1"),),
        timeout_policy=TimeoutPolicy(),
    )
    await container.lifecycle.schedule_ceremony(ceremony)
    transitions = await container.lifecycle.tick()
    if verbose:
        for transition in transitions:
            print(
                f"  {transition.ceremony_id}: {transition.from_state.value} -> "
                f"{transition.to_state.value} ({transition.reason})"
            )
    for participant_id in ("A", "B", "C"):
        await container.coordinator.register_participant(ceremony_id, participant_id)
        await container.coordinator.join(ceremony_id, CIRCUIT_ID, participant_id)
    return container, time_authority


async def run_estimate_scenario(verbose: bool, as_json: bool) -> bool:
    """Scenario 1: cold-start estimates and the first valid outcome."""
    print_section("Scenario 1: Estimate from the first valid outcome")
    container, _ = await new_ceremony("estimate", verbose)

    print("\n  --- Cold start ---")
    await print_queue(container, "estimate", as_json)

    await container.coordinator.report_outcome("estimate", CIRCUIT_ID, "A", 120_000, 30_000, True)
    print("\n  --- A reported 120000 ms + 30000 ms (valid) ---")
    await print_queue(container, "estimate", as_json)

    observation = await container.coordinator.observe("estimate", CIRCUIT_ID, "C")
    return observation.estimated_wait_seconds == 150


async def run_timeout_scenario(verbose: bool, as_json: bool) -> bool:
    """Scenario 2: fixed-window eviction, cooldown and re-join."""
    print_section("Scenario 2: Fixed timeout eviction and cooldown")
    container, time_authority = await new_ceremony("timeout", verbose)
    ceremony = await container.lifecycle.require_ceremony("timeout")

    time_authority.advance(seconds=ceremony.timeout_policy.fixed_window_seconds + 1)
    print(f"\n  --- Advanced past the window: {time_authority.now().isoformat()} ---")
    evicted = await container.monitor.sweep()
    for record in evicted:
        print(
            f"  evicted {record.participant_id} ({record.cause.value}), "
            f"retry at {record.ends_at.isoformat()}"
        )
    await print_queue(container, "timeout", as_json)

    try:
        await container.coordinator.join("timeout", CIRCUIT_ID, "A")
        refused = False
    except NoRetryYetError as e:
        refused = True
        print(f"\n  re-join refused: {e}")

    time_authority.advance(seconds=ceremony.timeout_policy.cooldown_seconds)
    result = await container.coordinator.join("timeout", CIRCUIT_ID, "A")
    print(f"\n  --- Cooldown elapsed, A re-joined at position {result.position} ---")
    await print_queue(container, "timeout", as_json)

    if verbose:
        print(f"\n  ledger commits={container.ledger.commit_count} "
              f"conflicts={container.ledger.conflict_count}")
    return refused and result.position == 3


async def main() -> int:
    parser = argparse.ArgumentParser(description="Contribution scheduler walkthrough")
    parser.add_argument(
        "--scenario",
        choices=["estimate", "timeout", "all"],
        default="all",
        help="Which scenario to run (default: all)",
    )
    parser.add_argument("--json", action="store_true", help="Print observations as JSON")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    configure_structlog(os.getenv("ENVIRONMENT", "development"))

    scenarios = ["estimate", "timeout"] if args.scenario == "all" else [args.scenario]
    outcomes: dict[str, bool] = {}
    for scenario in scenarios:
        if scenario == "estimate":
            outcomes[scenario] = await run_estimate_scenario(args.verbose, args.json)
        elif scenario == "timeout":
            outcomes[scenario] = await run_timeout_scenario(args.verbose, args.json)

    print_section("Summary")
    for scenario, passed in outcomes.items():
        print(f"  {scenario:10s} {'OK' if passed else 'UNEXPECTED'}")
    return 0 if all(outcomes.values()) else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
