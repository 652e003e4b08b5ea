"""Serialize track events to MML text."""

from __future__ import annotations

from collections.abc import Iterable

from midi_to_mml.duration import units_to_lengths
from midi_to_mml.models import REST, Note, TrackEvent, TrackEventKind

_FIXED_TEXT = {
    TrackEventKind.INCRE_OCTAVE: ">",
    TrackEventKind.DECRE_OCTAVE: "<",
    TrackEventKind.CONNECT_CHORD: ":",
    TrackEventKind.CONNECT_NOTE: "",
}

_PREFIXES = {
    TrackEventKind.TEMPO: "t",
    TrackEventKind.OCTAVE: "o",
    TrackEventKind.VELOCITY: "v",
}


def render_tied(pitch: str, units: int) -> str:
    """Write ``units`` as a same-pitch tie chain, e.g. ``c4&c16``."""
    return "&".join(pitch + length for length in units_to_lengths(units))


def render_note(note: Note) -> str:
    return render_tied(note.pitch, note.duration_in_note_64)


def render_event(event: TrackEvent) -> str:
    kind = event.kind
    if kind == TrackEventKind.NOTE:
        return render_note(event.value)
    if kind == TrackEventKind.REST:
        return render_tied(REST, event.value)
    if kind in _PREFIXES:
        return f"{_PREFIXES[kind]}{event.value}"
    return _FIXED_TEXT[kind]


def render(events: Iterable[TrackEvent]) -> str:
    return "".join(render_event(event) for event in events)
