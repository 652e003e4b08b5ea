"""Track builder: turns one MIDI track into MML track events."""

from __future__ import annotations

import logging
from collections.abc import Iterable

import mido

from midi_to_mml.config import DEFAULT_VELOCITY, MIDI_OCTAVE_OFFSET, MIDI_VELOCITY_MAX, MML_VELOCITY_MAX
from midi_to_mml.duration import ticks_to_units, units_to_length_tokens
from midi_to_mml.models import Instrument, Note, TrackEvent, TrackEventKind
from midi_to_mml.renderer import render, render_event

logger = logging.getLogger(__name__)


def velocity_to_level(velocity: int) -> int:
    """Scale a MIDI velocity (0-127) to an MML level (0-15)."""
    return int(velocity * MML_VELOCITY_MAX / MIDI_VELOCITY_MAX + 0.5)


class TrackBuilder:
    """Scan state for one track, stepped one MIDI message at a time.

    ``holding_notes`` maps a held key to the index of its still-open
    ``SetNote`` event; the note is closed in place on its note-off.
    """

    def __init__(self, ppq: int, emit_velocity: bool = False) -> None:
        self.ppq = ppq
        self.emit_velocity = emit_velocity
        self.events: list[TrackEvent] = []
        self.holding_notes: dict[int, int] = {}
        self.current_tick = 0
        self.velocity_level = DEFAULT_VELOCITY

    def feed(self, msg: mido.Message | mido.MetaMessage) -> None:
        """Advance by the message's delta time and apply it."""
        self.current_tick += msg.time

        if msg.type == "set_tempo":
            bpm = max(1, round(mido.tempo2bpm(msg.tempo)))
            self.events.append(TrackEvent.set_tempo(bpm))

        elif msg.type == "note_on" and msg.velocity > 0:
            self.create_note(msg.note, msg.velocity)

        elif msg.type in ("note_off", "note_on"):
            self.update_note(msg.note)

    def finish(self) -> list[TrackEvent]:
        """Close notes still held at the end of the track and return the events."""
        for key in list(self.holding_notes):
            logger.debug("Closing held note %d at end of track (tick %d)", key, self.current_tick)
            self.update_note(key)
        return self.events

    def create_note(self, key: int, velocity: int) -> None:
        # Retriggering a held key ends the previous note first
        if key in self.holding_notes:
            self.update_note(key)

        note = Note(
            midi_key=key,
            position_in_tick=self.current_tick,
            position_in_note_64=ticks_to_units(self.current_tick, self.ppq),
            velocity=velocity,
        )
        if note.octave != key // 12 - MIDI_OCTAVE_OFFSET:
            logger.debug("Key %d is below o0 and will be written one octave up", key)

        before = self.last_note()
        if before is None:
            if note.position_in_note_64 > 0:
                self.events.append(TrackEvent.set_rest(note.position_in_note_64))
            self.events.append(TrackEvent.set_octave(note.octave))
        else:
            self._connect(before, note)
            self._shift_octave(before.octave, note.octave)

        if self.emit_velocity:
            level = velocity_to_level(velocity)
            if level != self.velocity_level:
                self.events.append(TrackEvent.set_velocity(level))
                self.velocity_level = level

        self.holding_notes[key] = len(self.events)
        self.events.append(TrackEvent.set_note(note))

    def update_note(self, key: int) -> None:
        """Close the held note for ``key``; unmatched note-offs are ignored."""
        index = self.holding_notes.pop(key, None)
        if index is None:
            return

        note = self.events[index].value
        note.duration_in_tick = self.current_tick - note.position_in_tick
        # A note never renders shorter than one 64th
        note.duration_in_note_64 = max(1, ticks_to_units(note.duration_in_tick, self.ppq))
        note.duration = units_to_length_tokens(note.duration_in_note_64)
        note.is_open = False

    def last_note(self) -> Note | None:
        for event in reversed(self.events):
            if event.kind == TrackEventKind.NOTE:
                return event.value
        return None

    def _connect(self, before: Note, note: Note) -> None:
        # An open note has no duration yet, so its end is its onset
        position_diff = note.position_in_note_64 - before.end_in_note_64

        if position_diff > 0:
            self.events.append(TrackEvent.set_rest(position_diff))
        elif position_diff == 0:
            self.events.append(TrackEvent(TrackEventKind.CONNECT_CHORD))
        else:
            self.events.append(TrackEvent(TrackEventKind.CONNECT_NOTE))

    def _shift_octave(self, before: int, after: int) -> None:
        diff = after - before
        if diff == 1:
            self.events.append(TrackEvent(TrackEventKind.INCRE_OCTAVE))
        elif diff == -1:
            self.events.append(TrackEvent(TrackEventKind.DECRE_OCTAVE))
        else:
            self.events.append(TrackEvent.set_octave(after))


class Track:
    """Encoded events of one MIDI track plus its metadata."""

    def __init__(
        self,
        events: list[TrackEvent],
        name: str = "",
        instrument: Instrument | None = None,
    ) -> None:
        self.events = events
        self.name = name
        self.instrument = instrument or Instrument()

    @classmethod
    def from_messages(
        cls,
        messages: Iterable[mido.Message | mido.MetaMessage],
        ppq: int,
        name: str = "",
        instrument: Instrument | None = None,
        emit_velocity: bool = False,
    ) -> Track:
        builder = TrackBuilder(ppq, emit_velocity=emit_velocity)
        for msg in messages:
            builder.feed(msg)
        return cls(builder.finish(), name=name, instrument=instrument)

    @property
    def notes(self) -> list[Note]:
        return [e.value for e in self.events if e.kind == TrackEventKind.NOTE]

    @property
    def note_count(self) -> int:
        return len(self.notes)

    def to_mml(self) -> str:
        return render(self.events)

    def to_mml_debug(self) -> str:
        """One event per line, for inspecting the encoder's decisions."""
        lines = []
        for i, event in enumerate(self.events):
            text = render_event(event) or "(connect note)"
            lines.append(f"{i:>5} {event.kind.name:<14} {text}")
        return "\n".join(lines)
