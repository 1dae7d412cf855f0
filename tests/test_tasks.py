"""
tests/test_tasks.py — Background Task Runner
=============================================
"""

from __future__ import annotations

import asyncio
import logging

from conftest import run_async

from kcbot.services.tasks import TaskRunner


def test_spawn_and_drain():
    results = []

    async def work(n):
        await asyncio.sleep(0)
        results.append(n)

    async def main():
        runner = TaskRunner()
        for n in range(3):
            runner.spawn(work(n), name=f"work-{n}")
        assert len(runner) == 3
        await runner.drain(timeout=1)
        return runner

    runner = run_async(main())
    assert sorted(results) == [0, 1, 2]
    assert len(runner) == 0


def test_failures_are_logged(caplog):
    async def boom():
        raise RuntimeError("kaput")

    async def main():
        runner = TaskRunner()
        runner.spawn(boom(), name="boom")
        await runner.drain(timeout=1)
        await asyncio.sleep(0)

    with caplog.at_level(logging.ERROR, logger="kcbot.services.tasks"):
        run_async(main())
    assert "Background task boom failed" in caplog.text


def test_drain_cancels_stragglers():
    async def main():
        runner = TaskRunner()
        task = runner.spawn(asyncio.sleep(10), name="slow")
        await runner.drain(timeout=0.01)
        await asyncio.sleep(0)
        return task

    task = run_async(main())
    assert task.cancelled()


def test_drain_with_nothing_pending():
    run_async(TaskRunner().drain(timeout=0))
