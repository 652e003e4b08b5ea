"""Duration quantization between MIDI ticks, 64th-note units and MML lengths."""

from __future__ import annotations

from midi_to_mml.config import NOTE_64_PER_QUARTER, NOTE_64_PER_WHOLE

# Canonical lengths in units, largest first: whole, half, ..., 64th
CANONICAL_UNITS = (64, 32, 16, 8, 4, 2, 1)


def ticks_to_units(ticks: int, ppq: int) -> int:
    """Quantize a tick count to 64th-note units, rounding halves up."""
    if ppq <= 0:
        raise ValueError(f"ppq must be positive, got {ppq}")
    numerator = ticks * NOTE_64_PER_QUARTER
    return (2 * numerator + ppq) // (2 * ppq)


def units_to_lengths(units: int) -> list[str]:
    """Greedy largest-first decomposition of ``units`` into MML lengths.

    Each step takes the largest canonical length that fits, dotted when the
    dotted form still fits. ``units_to_lengths(28) == ["4.", "16"]``.
    """
    lengths: list[str] = []
    remaining = units
    while remaining > 0:
        for size in CANONICAL_UNITS:
            if size <= remaining:
                break
        length = str(NOTE_64_PER_WHOLE // size)
        dotted = size + size // 2
        if size > 1 and dotted <= remaining:
            lengths.append(length + ".")
            remaining -= dotted
        else:
            lengths.append(length)
            remaining -= size
    return lengths


def units_to_length_tokens(units: int) -> str:
    """Render ``units`` as ``&``-joined length tokens (``"4&16"``); ``""`` for 0."""
    return "&".join(units_to_lengths(units))


def length_to_units(length: str) -> float:
    """Inverse vocabulary: ``"4"`` -> 16, ``"4."`` -> 24, ``"3"`` -> 21.33..."""
    dotted = length.endswith(".")
    digits = length[:-1] if dotted else length
    if not (digits.isascii() and digits.isdigit()):
        raise ValueError(f"Invalid MML length: {length!r}")
    value = int(digits)
    if value == 0:
        raise ValueError("MML length must be positive")
    units = NOTE_64_PER_WHOLE / value
    return units * 1.5 if dotted else units


def units_to_ms(units: float, tempo: int) -> float:
    """Milliseconds spanned by ``units`` at ``tempo`` quarter notes per minute."""
    return units * 60_000 / tempo / NOTE_64_PER_QUARTER
