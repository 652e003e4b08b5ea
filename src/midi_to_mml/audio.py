"""Audio sink protocol and blocking note/chord playback helpers."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from midi_to_mml.models import NoteEvent


@runtime_checkable
class SynthConnection(Protocol):
    """Handle to a synthesizer, cloned once per playing track.

    Implementations synchronize internally; clones may be used from
    different threads at the same time.
    """

    def note_on(self, key: int, velocity: int, channel: int) -> None: ...
    def note_off(self, key: int, channel: int) -> None: ...
    def program_select(self, channel: int, program: int, bank: int = 0) -> None: ...
    def wait(self, seconds: float) -> None: ...
    def clone(self) -> SynthConnection: ...


def play_note(connection: SynthConnection, note: NoteEvent, channel: int = 0) -> None:
    """Play one note (or rest) and block for its duration."""
    seconds = note.duration_in_ms / 1000.0
    if note.is_rest:
        connection.wait(seconds)
        return
    connection.note_on(note.midi_key, note.velocity, channel)
    connection.wait(seconds)
    connection.note_off(note.midi_key, channel)


def play_chord(connection: SynthConnection, notes: Sequence[NoteEvent], channel: int = 0) -> None:
    """Start all notes together, release each at its own duration.

    Returns once the longest note has been released.
    """
    for note in notes:
        if not note.is_rest:
            connection.note_on(note.midi_key, note.velocity, channel)

    elapsed = 0.0
    for note in sorted(notes, key=lambda n: n.duration_in_ms):
        seconds = note.duration_in_ms / 1000.0
        if seconds > elapsed:
            connection.wait(seconds - elapsed)
            elapsed = seconds
        if not note.is_rest:
            connection.note_off(note.midi_key, channel)
