#!/usr/bin/env python3
"""
Admission race experiment.

Drives the real AdmissionController against the in-memory store with a
simulated round-trip latency and reports how many callers were admitted,
turned away by the pre-check, or lost the race at the atomic mutation.

Run from the repository root:
  PYTHONPATH=backend python experiments/admission_race.py
"""

import asyncio
import random
import statistics
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List

from prometheus_client import REGISTRY

from rsvp.core.errors import AlreadyMember, CapacityExceeded, NotMember
from rsvp.services.admission_service import AdmissionController
from rsvp.services.interfaces.membership import EventDraft
from rsvp.services.interfaces.memory_store import InMemoryMembershipStore

OWNER = "owner"


@dataclass
class Metrics:
    admitted: int = 0
    rejected: int = 0  # capacity_exceeded, pre-check or lost race
    duplicates: int = 0
    left: int = 0
    response_times: List[float] = field(default_factory=list)

    def percentile(self, p: float) -> float:
        if not self.response_times:
            return 0
        sorted_times = sorted(self.response_times)
        idx = int(len(sorted_times) * p)
        return sorted_times[min(idx, len(sorted_times)-1)]


def lost_race_total(operation: str) -> float:
    return REGISTRY.get_sample_value("rsvp_admission_lost_races_total", {"operation": operation}) or 0.0


async def new_event(store: InMemoryMembershipStore, capacity: int):
    draft = EventDraft(
        title="Race",
        description="",
        date=datetime.now(timezone.utc) + timedelta(days=1),
        location="",
        capacity=capacity,
    )
    return await store.create_event(draft, OWNER)


async def timed(metrics: Metrics, coro):
    start = time.perf_counter()
    try:
        return await coro
    finally:
        metrics.response_times.append((time.perf_counter() - start) * 1000)


async def run_stampede(users: int, capacity: int, latency: float):
    """Everyone joins at once."""
    store = InMemoryMembershipStore(latency=latency)
    controller = AdmissionController(store)
    event = await new_event(store, capacity)
    metrics = Metrics()

    async def attempt(user_id: str):
        try:
            await timed(metrics, controller.join(event.id, user_id))
            metrics.admitted += 1
        except CapacityExceeded:
            metrics.rejected += 1
        except AlreadyMember:
            metrics.duplicates += 1

    before = lost_race_total("join")
    await asyncio.gather(*(attempt(f"user-{i}") for i in range(users)))
    attendance = await controller.get_attendance(event.id)
    return metrics, attendance, lost_race_total("join") - before


async def run_churn(users: int, capacity: int, latency: float, rounds: int = 10):
    """Users join and leave at random; the bound must hold throughout."""
    store = InMemoryMembershipStore(latency=latency)
    controller = AdmissionController(store)
    event = await new_event(store, capacity)
    metrics = Metrics()
    peak = 0

    async def participant(user_id: str):
        nonlocal peak
        for _ in range(rounds):
            try:
                if random.random() < 0.6:
                    snapshot = await timed(metrics, controller.join(event.id, user_id))
                    metrics.admitted += 1
                else:
                    snapshot = await timed(metrics, controller.leave(event.id, user_id))
                    metrics.left += 1
                peak = max(peak, snapshot.attendee_count)
            except CapacityExceeded:
                metrics.rejected += 1
            except (AlreadyMember, NotMember):
                metrics.duplicates += 1

    await asyncio.gather(*(participant(f"user-{i}") for i in range(users)))
    attendance = await controller.get_attendance(event.id)
    return metrics, attendance, peak


def print_header(text: str):
    print(f"\n{'='*70}")
    print(f"{text:^70}")
    print(f"{'='*70}\n")


def print_latency(metrics: Metrics):
    if metrics.response_times:
        print(f"  Avg latency:     {statistics.mean(metrics.response_times):.2f}ms")
        print(f"  P95 latency:     {metrics.percentile(0.95):.2f}ms")
        print(f"  P99 latency:     {metrics.percentile(0.99):.2f}ms")


async def main():
    print_header("ADMISSION RACE EXPERIMENT")

    SCENARIOS = [
        ("HIGH Contention", 1000, 10),
        ("Moderate", 1000, 500),
        ("Last Spot", 200, 2),
    ]

    for name, users, capacity in SCENARIOS:
        print_header(f"{name}: {users} users / {capacity} spots")
        start = time.perf_counter()
        metrics, attendance, races = await run_stampede(users, capacity, latency=0.0005)
        duration = time.perf_counter() - start

        print(f"  Admitted:        {metrics.admitted}")
        print(f"  Rejected:        {metrics.rejected}")
        print(f"  Lost races:      {races:.0f}")
        print(f"  Final count:     {attendance.attendee_count}/{attendance.capacity}")
        print(f"  Duration:        {duration:.2f}s")
        print_latency(metrics)
        ok = attendance.attendee_count <= attendance.capacity
        print(f"\n  Bound held:      {'✓' if ok else '✗'}")

    print_header("CHURN: 100 users / 10 spots")
    metrics, attendance, peak = await run_churn(100, 10, latency=0.0005)
    print(f"  Joins:           {metrics.admitted}")
    print(f"  Leaves:          {metrics.left}")
    print(f"  Rejected:        {metrics.rejected}")
    print(f"  Peak count:      {peak}")
    print(f"  Final count:     {attendance.attendee_count}/{attendance.capacity}")
    print_latency(metrics)
    ok = peak <= attendance.capacity
    print(f"\n  Bound held:      {'✓' if ok else '✗'}")


if __name__ == "__main__":
    asyncio.run(main())
