"""Tests for backend.watch — revision counter and long-poll waits."""

import asyncio

from backend.watch import Notifier


def test_unwritten_path_has_start_revision():
    n = Notifier()
    assert n.revision("sessions/S1") == n.revision("sessions/S2")


def test_bump_moves_path_and_collection():
    n = Notifier()
    start = n.revision("sessions/S1/chat")
    rev = n.bump("sessions/S1/chat/m1")
    assert rev > start
    assert n.revision("sessions/S1/chat/m1") == rev
    assert n.revision("sessions/S1/chat") == rev
    assert n.revision("sessions/S1") == start


async def test_wait_returns_immediately_when_behind():
    n = Notifier()
    assert await n.wait("sessions/S1", after=-1, timeout=5)


async def test_wait_times_out():
    n = Notifier()
    current = n.revision("sessions/S1")
    assert not await n.wait("sessions/S1", after=current, timeout=0.01)


async def test_zero_timeout_does_not_block():
    n = Notifier()
    assert not await n.wait("sessions/S1", after=n.revision("sessions/S1"), timeout=0)


async def test_wait_wakes_on_bump():
    n = Notifier()
    current = n.revision("sessions/S1/chat")
    waiter = asyncio.create_task(n.wait("sessions/S1/chat", after=current, timeout=5))
    await asyncio.sleep(0)
    n.bump("sessions/S1/chat/m1")
    assert await waiter
