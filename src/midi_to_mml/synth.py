"""Audio synthesis via FluidSynth + SoundFonts."""

from __future__ import annotations

import logging
import sys
import threading
import time
from pathlib import Path

import fluidsynth

from midi_to_mml.config import DRUM_BANK, DRUM_CHANNEL, MIDI_CHANNELS

logger = logging.getLogger(__name__)


def _detect_audio_driver() -> str:
    """Auto-detect the appropriate FluidSynth audio driver for the platform."""
    if sys.platform == "linux":
        return "pulseaudio"
    elif sys.platform == "darwin":
        return "coreaudio"
    elif sys.platform == "win32":
        return "dsound"
    return "alsa"


class FluidSynthOutput:
    """Owns one FluidSynth instance and hands out thread-safe connections."""

    def __init__(
        self,
        soundfont_path: str | Path,
        driver: str | None = None,
        gain: float = 0.8,
    ) -> None:
        started = time.perf_counter()
        self.fs = fluidsynth.Synth(gain=gain)
        self.fs.start(driver=driver or _detect_audio_driver())
        self._lock = threading.Lock()
        self.sfid = self.fs.sfload(str(soundfont_path))
        if self.sfid == -1:
            self.fs.delete()
            raise OSError(f"Failed to load SoundFont {soundfont_path}")
        for channel in range(MIDI_CHANNELS):
            bank = DRUM_BANK if channel == DRUM_CHANNEL else 0
            self.fs.program_select(channel, self.sfid, bank, 0)
        logger.info("Initialized synth in %dms", (time.perf_counter() - started) * 1000)

    def connection(self) -> FluidSynthConnection:
        return FluidSynthConnection(self, self._lock)

    def all_notes_off(self) -> None:
        with self._lock:
            for ch in range(MIDI_CHANNELS):
                for pitch in range(128):
                    self.fs.noteoff(ch, pitch)

    def shutdown(self) -> None:
        self.all_notes_off()
        self.fs.delete()


class FluidSynthConnection:
    """Clonable handle; every clone serializes synth calls on the same lock."""

    def __init__(self, output: FluidSynthOutput, lock: threading.Lock) -> None:
        self._output = output
        self._lock = lock

    def note_on(self, key: int, velocity: int, channel: int) -> None:
        with self._lock:
            self._output.fs.noteon(channel, key, velocity)

    def note_off(self, key: int, channel: int) -> None:
        with self._lock:
            self._output.fs.noteoff(channel, key)

    def program_select(self, channel: int, program: int, bank: int = 0) -> None:
        with self._lock:
            self._output.fs.program_select(channel, self._output.sfid, bank, program)

    def wait(self, seconds: float) -> None:
        time.sleep(seconds)

    def clone(self) -> FluidSynthConnection:
        return FluidSynthConnection(self._output, self._lock)
