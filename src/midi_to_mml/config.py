"""Global constants and default settings."""

from __future__ import annotations

from dataclasses import dataclass

# Quantization: one quarter note is 16 units, so one unit is a 64th note
NOTE_64_PER_QUARTER = 16
NOTE_64_PER_WHOLE = 64

# MIDI key 60 (middle C) is written as o4c
MIDI_OCTAVE_OFFSET = 1
MIDI_KEY_MIN = 0
MIDI_KEY_MAX = 127

# MML velocity levels run 0-15
MML_VELOCITY_MAX = 15
MIDI_VELOCITY_MAX = 127

DEFAULT_TEMPO = 120
DEFAULT_OCTAVE = 4
DEFAULT_VELOCITY = 12

# General MIDI percussion channel (channel 10, index 9) and its SoundFont bank
DRUM_CHANNEL = 9
DRUM_BANK = 128
MIDI_CHANNELS = 16


@dataclass(frozen=True)
class MmlDefaults:
    """Initial parser context, handed to each parse."""

    tempo: int = DEFAULT_TEMPO
    octave: int = DEFAULT_OCTAVE
    velocity: int = DEFAULT_VELOCITY
