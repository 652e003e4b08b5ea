"""MML parser: re-derives octave/tempo/velocity context and produces note events."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from midi_to_mml.audio import SynthConnection, play_chord, play_note
from midi_to_mml.config import MIDI_VELOCITY_MAX, MML_VELOCITY_MAX, MmlDefaults
from midi_to_mml.duration import length_to_units, units_to_ms
from midi_to_mml.models import (
    PITCH_CLASSES,
    REST,
    Instrument,
    MmlEvent,
    MmlEventKind,
    NoteEvent,
    midi_key_in_range,
)

logger = logging.getLogger(__name__)

_DIGITS = "0123456789"
_NUMERIC_COMMANDS = {
    "t": MmlEventKind.TEMPO,
    "o": MmlEventKind.OCTAVE,
    "v": MmlEventKind.VELOCITY,
}
_SINGLE_COMMANDS = {
    ">": MmlEventKind.INCRE_OCTAVE,
    "<": MmlEventKind.DECRE_OCTAVE,
    ":": MmlEventKind.CONNECT_CHORD,
}


class ParseError(Exception):
    """Raised when MML text cannot be parsed; ``offset`` points at the problem."""

    def __init__(self, offset: int, message: str) -> None:
        super().__init__(f"{message} at offset {offset}")
        self.offset = offset


def level_to_velocity(level: int) -> int:
    """Scale an MML velocity level (0-15) to MIDI velocity (0-127)."""
    return min(MIDI_VELOCITY_MAX, int(level * MIDI_VELOCITY_MAX / MML_VELOCITY_MAX + 0.5))


@dataclass
class ParseContext:
    """Running context of a single parse pass."""

    tempo: int
    octave: int
    velocity: int
    is_connect_chord: bool = False

    @classmethod
    def from_defaults(cls, defaults: MmlDefaults) -> ParseContext:
        return cls(tempo=defaults.tempo, octave=defaults.octave, velocity=defaults.velocity)

    def apply(self, event: MmlEvent) -> None:
        kind = event.kind
        if kind == MmlEventKind.TEMPO:
            if event.value <= 0:
                raise ParseError(event.offset, "Tempo must be positive")
            self.tempo = event.value
        elif kind == MmlEventKind.OCTAVE:
            self.octave = event.value
        elif kind == MmlEventKind.INCRE_OCTAVE:
            self.octave += 1
        elif kind == MmlEventKind.DECRE_OCTAVE:
            if self.octave == 0:
                raise ParseError(event.offset, "Octave below 0")
            self.octave -= 1
        elif kind == MmlEventKind.VELOCITY:
            self.velocity = event.value
        elif kind == MmlEventKind.CONNECT_CHORD:
            self.is_connect_chord = True
        elif kind == MmlEventKind.NOTE:
            self.is_connect_chord = False


class Scanner:
    """Left-to-right cursor over MML text. Whitespace between tokens is ignored."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.index = 0

    def next_event(self, context: ParseContext) -> MmlEvent | None:
        """Consume one token; ``None`` once the text is exhausted."""
        text = self.text
        while self.index < len(text) and text[self.index].isspace():
            self.index += 1
        if self.index >= len(text):
            return None

        offset = self.index
        char = text[offset].lower()

        if char in _NUMERIC_COMMANDS:
            value = self._read_number(offset + 1)
            return MmlEvent(_NUMERIC_COMMANDS[char], value, offset)

        if char in _SINGLE_COMMANDS:
            self.index += 1
            return MmlEvent(_SINGLE_COMMANDS[char], None, offset)

        return MmlEvent(MmlEventKind.NOTE, self._read_note(context), offset)

    def _read_digits(self, start: int) -> str:
        end = start
        while end < len(self.text) and self.text[end] in _DIGITS:
            end += 1
        return self.text[start:end]

    def _read_number(self, start: int) -> int:
        digits = self._read_digits(start)
        if not digits:
            raise ParseError(start, f"Expected a number after {self.text[start - 1]!r}")
        self.index = start + len(digits)
        return int(digits)

    def _read_note(self, context: ParseContext) -> NoteEvent:
        """Read ``<pitch>['+']<digits>['.']`` segments tied by ``&`` to the same pitch."""
        text = self.text
        start = self.index
        pitch = text[start].lower()
        if pitch != REST and pitch not in PITCH_CLASSES:
            raise ParseError(start, f"Unexpected character {text[start]!r}")

        is_sharp: bool | None = None
        units = 0.0
        pos = start
        while True:
            segment = pos
            pos += 1
            sharp = pos < len(text) and text[pos] == "+"
            if sharp:
                if pitch == REST:
                    raise ParseError(pos, "A rest cannot be sharp")
                pos += 1
            if is_sharp is None:
                is_sharp = sharp
            elif sharp != is_sharp:
                raise ParseError(segment, "A tie must continue the same pitch")

            length = self._read_digits(pos)
            if not length:
                raise ParseError(pos, "Expected a note length")
            pos += len(length)
            if pos < len(text) and text[pos] == ".":
                length += "."
                pos += 1
            try:
                units += length_to_units(length)
            except ValueError as exc:
                raise ParseError(pos - len(length), str(exc)) from exc

            if pos < len(text) and text[pos] == "&":
                if pos + 1 < len(text) and text[pos + 1].lower() == pitch:
                    pos += 1
                    continue
                raise ParseError(pos, "A tie must continue the same pitch")
            break

        self.index = pos

        note = NoteEvent(
            pitch=pitch,
            is_sharp=is_sharp,
            octave=context.octave,
            velocity=level_to_velocity(context.velocity),
            duration_in_note_64=units,
            duration_in_ms=units_to_ms(units, context.tempo),
            is_connected_to_prev_note=context.is_connect_chord,
        )
        key = note.midi_key
        if key is not None and not midi_key_in_range(key):
            raise ParseError(start, f"Note {pitch} in octave {context.octave} is outside the MIDI range")
        return note


def iter_events(mml: str, defaults: MmlDefaults = MmlDefaults()) -> Iterator[MmlEvent]:
    """Yield the events of ``mml`` one at a time, tracking context as it goes."""
    context = ParseContext.from_defaults(defaults)
    scanner = Scanner(mml)
    while (event := scanner.next_event(context)) is not None:
        context.apply(event)
        yield event


def group_notes(notes: Iterable[NoteEvent]) -> Iterator[list[NoteEvent]]:
    """Group notes for playback: a single note, or a chord of connected notes.

    A group is held back until the following note shows whether it joins it,
    and the last group is yielded once the notes run out.
    """
    group: list[NoteEvent] = []
    for note in notes:
        if note.is_connected_to_prev_note or not group:
            group.append(note)
            continue
        yield group
        group = [note]
    if group:
        yield group


class Parser:
    """Parsed MML of one track. Immutable after ``parse``; safe to share across threads."""

    def __init__(
        self,
        raw_mml: str,
        notes: list[NoteEvent],
        instrument: Instrument | None = None,
    ) -> None:
        self.raw_mml = raw_mml
        self.notes = notes
        self.instrument = instrument or Instrument()

    @classmethod
    def parse(
        cls,
        mml: str,
        instrument: Instrument | None = None,
        defaults: MmlDefaults = MmlDefaults(),
    ) -> Parser:
        """Parse ``mml``.

        Raises:
            ParseError: On any token that is neither a command nor a note.
        """
        notes = [
            event.value
            for event in iter_events(mml, defaults)
            if event.kind == MmlEventKind.NOTE
        ]
        return cls(mml, notes, instrument)

    def play(
        self,
        connection: SynthConnection,
        channel: int = 0,
        stop_event: threading.Event | None = None,
    ) -> None:
        """Play every note group in order, blocking for their durations."""
        for group in group_notes(self.notes):
            if stop_event is not None and stop_event.is_set():
                logger.debug("Playback on channel %d stopped", channel)
                return
            if len(group) == 1:
                play_note(connection, group[0], channel)
            else:
                play_chord(connection, group, channel)
