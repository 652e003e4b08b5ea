"""MIDI to MML transcoding, MML parsing and concurrent playback."""

from midi_to_mml.models import Instrument, Note, NoteEvent, Song, TrackEvent, TrackEventKind
from midi_to_mml.parser import ParseError, Parser
from midi_to_mml.player import MmlPlayer, TrackBatchError, TrackState
from midi_to_mml.song_loader import (
    SongLoadError,
    SongOptions,
    load_song,
    load_song_bytes,
    split_track,
    track_count,
)
from midi_to_mml.track import Track, TrackBuilder

__all__ = [
    "Instrument",
    "MmlPlayer",
    "Note",
    "NoteEvent",
    "ParseError",
    "Parser",
    "Song",
    "SongLoadError",
    "SongOptions",
    "Track",
    "TrackBatchError",
    "TrackBuilder",
    "TrackEvent",
    "TrackEventKind",
    "TrackState",
    "load_song",
    "load_song_bytes",
    "split_track",
    "track_count",
]
