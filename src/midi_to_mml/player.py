"""Concurrent player: parses and plays every track on its own worker thread."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum, auto
from typing import TypeVar

from midi_to_mml.audio import SynthConnection
from midi_to_mml.config import DRUM_BANK, DRUM_CHANNEL, MIDI_CHANNELS, MmlDefaults
from midi_to_mml.models import Instrument, Song
from midi_to_mml.parser import Parser

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Melodic fallback channels skip the percussion channel
_MELODIC_CHANNELS = [ch for ch in range(MIDI_CHANNELS) if ch != DRUM_CHANNEL]


class TrackState(Enum):
    UNPARSED = auto()
    PARSING = auto()
    PARSED = auto()
    PLAYING = auto()
    DONE = auto()


class TrackBatchError(Exception):
    """One or more tracks of a batch failed; ``errors`` holds (track_index, exception)."""

    def __init__(self, action: str, errors: list[tuple[int, BaseException]]) -> None:
        self.action = action
        self.errors = errors
        detail = "; ".join(f"track {index}: {exc}" for index, exc in errors)
        super().__init__(f"{len(errors)} track(s) failed to {action}: {detail}")


def _fan_out(
    action: str,
    worker: Callable[..., T],
    jobs: list[tuple],
) -> list[T]:
    """Run ``worker(*job)`` for every job on its own thread and wait for all.

    Raises:
        TrackBatchError: If any job raised, after every job has finished.
    """
    with ThreadPoolExecutor(max_workers=len(jobs), thread_name_prefix=f"mml-{action}") as pool:
        futures: list[Future[T]] = [pool.submit(worker, *job) for job in jobs]

    errors = [(i, f.exception()) for i, f in enumerate(futures) if f.exception() is not None]
    if errors:
        raise TrackBatchError(action, errors)
    return [f.result() for f in futures]


class MmlPlayer:
    """Holds parsed tracks and plays them together on a shared synth connection."""

    def __init__(self, connection: SynthConnection) -> None:
        self.connection = connection
        self.tracks: list[Parser] = []
        self.states: list[TrackState] = []
        self._stop = threading.Event()

    @classmethod
    def from_mmls(
        cls,
        mmls: Iterable[tuple[str, Instrument | None]],
        connection: SynthConnection,
        defaults: MmlDefaults = MmlDefaults(),
    ) -> MmlPlayer:
        player = cls(connection)
        player.parse_mmls(mmls, defaults)
        return player

    @classmethod
    def from_song(cls, song: Song, connection: SynthConnection) -> MmlPlayer:
        return cls.from_mmls(song.to_mmls(), connection)

    def parse_mmls(
        self,
        mmls: Iterable[tuple[str, Instrument | None]],
        defaults: MmlDefaults = MmlDefaults(),
    ) -> None:
        """Parse every (mml, instrument) pair in parallel, keeping input order.

        Raises:
            TrackBatchError: If any track fails to parse; ``tracks`` is left as it was.
        """
        mmls = list(mmls)
        if not mmls:
            self.tracks, self.states = [], []
            return

        started = time.perf_counter()
        states = [TrackState.UNPARSED] * len(mmls)

        def parse(index: int, mml: str, instrument: Instrument | None) -> Parser:
            states[index] = TrackState.PARSING
            parser = Parser.parse(mml, instrument, defaults)
            states[index] = TrackState.PARSED
            return parser

        jobs = [(i, mml, instrument) for i, (mml, instrument) in enumerate(mmls)]
        self.tracks = _fan_out("parse", parse, jobs)
        self.states = states

        logger.info(
            "Parsed %d tracks, %d chars in %dms",
            len(mmls),
            sum(len(mml) for mml, _ in mmls),
            (time.perf_counter() - started) * 1000,
        )

    def channel_for(self, index: int) -> int:
        channel = self.tracks[index].instrument.channel
        if channel is not None:
            return channel
        return _MELODIC_CHANNELS[index % len(_MELODIC_CHANNELS)]

    def play(self) -> None:
        """Play all parsed tracks concurrently; returns when every track is done.

        Raises:
            TrackBatchError: If any track fails; the others are stopped early.
        """
        if not self.tracks:
            return

        started = time.perf_counter()
        self._stop.clear()

        jobs = []
        programs: dict[int, int] = {}
        for index, track in enumerate(self.tracks):
            channel = self.channel_for(index)
            program = track.instrument.program
            if programs.setdefault(channel, program) != program:
                logger.warning(
                    "Track %d switches channel %d from program %d to %d",
                    index,
                    channel,
                    programs[channel],
                    program,
                )
                programs[channel] = program
            bank = DRUM_BANK if channel == DRUM_CHANNEL else 0
            self.connection.program_select(channel, program, bank)
            jobs.append((index, track, self.connection.clone(), channel))

        _fan_out("play", self._play_track, jobs)
        logger.info("Played %d tracks in %dms", len(jobs), (time.perf_counter() - started) * 1000)

    def stop(self) -> None:
        """Ask every playing track to stop before its next note."""
        self._stop.set()

    def _play_track(
        self,
        index: int,
        track: Parser,
        connection: SynthConnection,
        channel: int,
    ) -> None:
        self.states[index] = TrackState.PLAYING
        try:
            track.play(connection, channel, self._stop)
        except Exception:
            logger.exception("Track %d failed during playback", index)
            self._stop.set()
            raise
        finally:
            self.states[index] = TrackState.DONE
