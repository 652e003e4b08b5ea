"""Load MIDI files into a Song of MML tracks."""

from __future__ import annotations

import io
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import mido

from midi_to_mml.instruments import instrument_for
from midi_to_mml.models import Instrument, Song
from midi_to_mml.track import Track

logger = logging.getLogger(__name__)


@dataclass
class SongOptions:
    """How a MIDI file is turned into tracks."""

    merge_tracks: list[tuple[int, int]] = field(default_factory=list)  # (into, from)
    emit_velocity: bool = False
    split_tracks: bool = False
    skip_empty_tracks: bool = True


class SongLoadError(Exception):
    """Raised when a song file cannot be parsed."""


def load_song(file_path: str | Path, options: SongOptions | None = None) -> Song:
    """Load a MIDI file and transcribe each of its tracks.

    Args:
        file_path: Path to a .mid or .midi file.
        options: Track merging and velocity options.

    Raises:
        SongLoadError: If the file cannot be parsed.
    """
    path = Path(file_path)
    if path.suffix.lower() not in (".mid", ".midi"):
        raise SongLoadError(f"Unsupported file format: {path.suffix}")
    try:
        return build_song(mido.MidiFile(str(path)), path.stem, options)
    except SongLoadError:
        raise
    except Exception as exc:
        raise SongLoadError(f"Failed to load {path.name}: {exc}") from exc


def load_song_bytes(data: bytes, options: SongOptions | None = None, title: str = "Untitled") -> Song:
    """Same as ``load_song`` for an in-memory MIDI file."""
    try:
        return build_song(mido.MidiFile(file=io.BytesIO(data)), title, options)
    except SongLoadError:
        raise
    except Exception as exc:
        raise SongLoadError(f"Failed to load {title}: {exc}") from exc


def track_count(file_path: str | Path) -> int:
    """Number of tracks in the decoded MIDI file, before any merging."""
    try:
        return len(mido.MidiFile(str(file_path)).tracks)
    except Exception as exc:
        raise SongLoadError(f"Failed to load {Path(file_path).name}: {exc}") from exc


def build_song(mid: mido.MidiFile, title: str = "Untitled", options: SongOptions | None = None) -> Song:
    options = options or SongOptions()
    song = Song(title=title, ticks_per_beat=mid.ticks_per_beat)

    groups = _merge_groups(len(mid.tracks), options.merge_tracks)
    for group in groups:
        combined = _combine(mid.tracks, group)
        if options.skip_empty_tracks and not _has_notes(combined):
            logger.debug("Skipping track %d: no notes", group[0])
            continue

        voices = split_track(combined) if options.split_tracks else [combined]
        if len(voices) > 1:
            logger.debug("Split track %d into %d voices", group[0], len(voices))

        # Type 1 files keep tempo changes in a conductor track
        tempo_track = _tempo_track(mid.tracks, exclude=group)
        name = mid.tracks[group[0]].name
        for number, messages in enumerate(voices, start=1):
            if tempo_track:
                messages = mido.merge_tracks([tempo_track, messages])
            song.tracks.append(
                Track.from_messages(
                    messages,
                    mid.ticks_per_beat,
                    name=name if number == 1 else f"{name} ({number})",
                    instrument=_detect_instrument(messages),
                    emit_velocity=options.emit_velocity,
                )
            )

    logger.info("Loaded %s: %d of %d tracks contain notes", title, len(song.tracks), len(mid.tracks))
    return song


def _merge_groups(count: int, merges: Sequence[tuple[int, int]]) -> list[list[int]]:
    groups: list[list[int]] = [[i] for i in range(count)]
    for into, source in merges:
        if not (0 <= into < count and 0 <= source < count) or into == source:
            raise SongLoadError(f"Invalid track merge {into} <- {source} for {count} tracks")
        if not groups[source]:
            raise SongLoadError(f"Track {source} was already merged")
        groups[into].extend(groups[source])
        groups[source] = []
    return [group for group in groups if group]


def split_track(messages: Sequence[mido.Message]) -> list[mido.MidiTrack]:
    """Deal the notes of one track out to voices that never overlap.

    Each note goes to the first voice with nothing held, a new voice is
    opened when all are busy. Every other message is copied to each voice.
    """
    shared: list[tuple[int, mido.Message]] = []
    voices: list[list[tuple[int, mido.Message]]] = [[]]
    held: list[tuple[int, int] | None] = [None]
    owner: dict[tuple[int, int], int] = {}
    tick = 0

    for msg in messages:
        tick += msg.time
        if msg.type == "end_of_track":
            continue
        if msg.type not in ("note_on", "note_off"):
            shared.append((tick, msg))
            continue

        key = (msg.channel, msg.note)
        if msg.type == "note_on" and msg.velocity > 0:
            voice = owner.get(key)
            if voice is None:
                voice = next((i for i, k in enumerate(held) if k is None), len(held))
                if voice == len(held):
                    held.append(None)
                    voices.append([])
                owner[key] = voice
                held[voice] = key
            voices[voice].append((tick, msg))
        else:
            voice = owner.pop(key, None)
            if voice is None:
                continue
            held[voice] = None
            voices[voice].append((tick, msg))

    return [_to_track(sorted(shared + notes, key=lambda item: item[0]), tick) for notes in voices]


def _to_track(timed: list[tuple[int, mido.Message]], end: int) -> mido.MidiTrack:
    track = mido.MidiTrack()
    last = 0
    for tick, msg in timed:
        track.append(msg.copy(time=tick - last))
        last = tick
    track.append(mido.MetaMessage("end_of_track", time=end - last))
    return track


def _combine(tracks: Sequence[mido.MidiTrack], group: list[int]) -> mido.MidiTrack:
    if len(group) == 1:
        return tracks[group[0]]
    return mido.merge_tracks([tracks[i] for i in group])


def _tempo_track(tracks: Sequence[mido.MidiTrack], exclude: list[int]) -> mido.MidiTrack:
    """Collect the tempo changes of the other tracks into one delta-timed track."""
    tempos: list[tuple[int, int]] = []
    for index, track in enumerate(tracks):
        if index in exclude:
            continue
        tick = 0
        for msg in track:
            tick += msg.time
            if msg.type == "set_tempo":
                tempos.append((tick, msg.tempo))

    tempo_track = mido.MidiTrack()
    last_tick = 0
    for tick, tempo in sorted(tempos):
        tempo_track.append(mido.MetaMessage("set_tempo", tempo=tempo, time=tick - last_tick))
        last_tick = tick
    return tempo_track


def _has_notes(messages: Sequence[mido.Message]) -> bool:
    return any(msg.type == "note_on" and msg.velocity > 0 for msg in messages)


def _detect_instrument(messages: Sequence[mido.Message]) -> Instrument:
    program: int | None = None
    channel: int | None = None
    for msg in messages:
        if program is None and msg.type == "program_change":
            program = msg.program
        if channel is None and msg.type == "note_on":
            channel = msg.channel
        if program is not None and channel is not None:
            break
    return instrument_for(program or 0, channel)
