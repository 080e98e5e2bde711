"""Tests for the fire-and-forget task runner."""

from __future__ import annotations

import logging
import threading

import pytest

from expedition_chat.background import BackgroundTaskRunner


class TestBackgroundTaskRunner:
    def test_runs_task_with_arguments(self):
        runner = BackgroundTaskRunner()
        seen = []
        future = runner.spawn_detached("collect", lambda a, b=0: seen.append(a + b), 2, b=3)
        runner.shutdown(wait=True)
        assert future.done()
        assert seen == [5]

    def test_spawn_returns_before_task_finishes(self):
        runner = BackgroundTaskRunner()
        release = threading.Event()
        future = runner.spawn_detached("slow", release.wait, 5)
        assert not future.done()
        release.set()
        runner.shutdown(wait=True)

    def test_failures_are_logged_not_raised(self, caplog):
        runner = BackgroundTaskRunner()

        def boom():
            raise RuntimeError("score store offline")

        with caplog.at_level(logging.ERROR, logger="expedition_chat.background"):
            future = runner.spawn_detached("lead-scoring", boom)
            runner.shutdown(wait=True)

        assert isinstance(future.exception(), RuntimeError)
        assert "lead-scoring" in caplog.text
        assert "score store offline" in caplog.text

    def test_no_work_after_shutdown(self):
        runner = BackgroundTaskRunner()
        runner.shutdown()
        with pytest.raises(RuntimeError):
            runner.spawn_detached("late", lambda: None)
