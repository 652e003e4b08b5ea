"""Shared fixtures: a synth connection that records calls instead of sounding."""

from __future__ import annotations

import threading

import pytest


class _Shared:
    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.clones = 0
        self.lock = threading.Lock()


class FakeConnection:
    """In-memory SynthConnection; clones share one call log."""

    def __init__(self, shared: _Shared | None = None) -> None:
        self.shared = shared or _Shared()

    @property
    def calls(self) -> list[tuple]:
        return self.shared.calls

    @property
    def clones(self) -> int:
        return self.shared.clones

    def _record(self, call: tuple) -> None:
        with self.shared.lock:
            self.shared.calls.append(call)

    def note_on(self, key: int, velocity: int, channel: int) -> None:
        self._record(("on", key, velocity, channel))

    def note_off(self, key: int, channel: int) -> None:
        self._record(("off", key, channel))

    def program_select(self, channel: int, program: int, bank: int = 0) -> None:
        self._record(("program", channel, program, bank))

    def wait(self, seconds: float) -> None:
        self._record(("wait", seconds))

    def clone(self) -> FakeConnection:
        with self.shared.lock:
            self.shared.clones += 1
        return type(self)(self.shared)


@pytest.fixture
def connection() -> FakeConnection:
    return FakeConnection()
