"""Core data models shared by the encoder, the parser and the player."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING

from midi_to_mml.config import MIDI_KEY_MAX, MIDI_KEY_MIN, MIDI_OCTAVE_OFFSET

if TYPE_CHECKING:
    from midi_to_mml.track import Track

# Pitch class -> MML pitch, sharps written with "+"
PITCH_NAMES = ("c", "c+", "d", "d+", "e", "f", "f+", "g", "g+", "a", "a+", "b")
PITCH_CLASSES = {"c": 0, "d": 2, "e": 4, "f": 5, "g": 7, "a": 9, "b": 11}
REST = "r"


@dataclass
class Note:
    """A transcribed note-on, closed in place once its note-off is seen."""

    midi_key: int  # MIDI note number 0-127
    position_in_tick: int
    position_in_note_64: int
    velocity: int = 80
    duration_in_tick: int = 0
    duration_in_note_64: int = 0
    duration: str = ""  # rendered length tokens, e.g. "4&16"
    is_open: bool = True

    @property
    def octave(self) -> int:
        return max(0, self.midi_key // 12 - MIDI_OCTAVE_OFFSET)

    @property
    def pitch(self) -> str:
        return PITCH_NAMES[self.midi_key % 12]

    @property
    def end_in_note_64(self) -> int:
        return self.position_in_note_64 + self.duration_in_note_64


class TrackEventKind(Enum):
    NOTE = auto()
    REST = auto()
    TEMPO = auto()
    OCTAVE = auto()
    INCRE_OCTAVE = auto()
    DECRE_OCTAVE = auto()
    VELOCITY = auto()
    CONNECT_CHORD = auto()
    CONNECT_NOTE = auto()


@dataclass
class TrackEvent:
    """One encoder event. ``value`` is a Note, a unit count, bpm, octave or level."""

    kind: TrackEventKind
    value: Note | int | None = None

    @classmethod
    def set_note(cls, note: Note) -> TrackEvent:
        return cls(TrackEventKind.NOTE, note)

    @classmethod
    def set_rest(cls, units: int) -> TrackEvent:
        return cls(TrackEventKind.REST, units)

    @classmethod
    def set_tempo(cls, bpm: int) -> TrackEvent:
        return cls(TrackEventKind.TEMPO, bpm)

    @classmethod
    def set_octave(cls, octave: int) -> TrackEvent:
        return cls(TrackEventKind.OCTAVE, octave)

    @classmethod
    def set_velocity(cls, level: int) -> TrackEvent:
        return cls(TrackEventKind.VELOCITY, level)


@dataclass(frozen=True)
class NoteEvent:
    """A playable note (or rest) produced by the MML parser."""

    pitch: str  # "c".."b", or "r" for a rest
    is_sharp: bool
    octave: int
    velocity: int  # MIDI scale 0-127
    duration_in_note_64: float
    duration_in_ms: float
    is_connected_to_prev_note: bool = False

    @property
    def is_rest(self) -> bool:
        return self.pitch == REST

    @property
    def midi_key(self) -> int | None:
        if self.is_rest:
            return None
        key = (self.octave + MIDI_OCTAVE_OFFSET) * 12 + PITCH_CLASSES[self.pitch]
        return key + 1 if self.is_sharp else key


def midi_key_in_range(key: int) -> bool:
    return MIDI_KEY_MIN <= key <= MIDI_KEY_MAX


class MmlEventKind(Enum):
    NOTE = auto()
    TEMPO = auto()
    OCTAVE = auto()
    INCRE_OCTAVE = auto()
    DECRE_OCTAVE = auto()
    VELOCITY = auto()
    CONNECT_CHORD = auto()


@dataclass(frozen=True)
class MmlEvent:
    """One step of the parser's cursor, tagged with its text offset."""

    kind: MmlEventKind
    value: NoteEvent | int | None = None
    offset: int = 0


@dataclass(frozen=True)
class Instrument:
    """Sound selection metadata carried next to a track's MML."""

    program: int = 0
    channel: int | None = None
    name: str = "Acoustic Grand Piano"


@dataclass
class Song:
    """Tracks transcribed from one MIDI file."""

    title: str = "Untitled"
    tracks: list[Track] = field(default_factory=list)
    ticks_per_beat: int = 480

    def to_mmls(self) -> list[tuple[str, Instrument]]:
        return [(track.to_mml(), track.instrument) for track in self.tracks]
