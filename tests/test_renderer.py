"""Tests for MML text rendering."""

from midi_to_mml.models import Note, TrackEvent, TrackEventKind
from midi_to_mml.renderer import render, render_event, render_tied


def test_command_events():
    events = [
        TrackEvent.set_tempo(120),
        TrackEvent.set_octave(4),
        TrackEvent(TrackEventKind.INCRE_OCTAVE),
        TrackEvent(TrackEventKind.DECRE_OCTAVE),
        TrackEvent.set_velocity(10),
        TrackEvent(TrackEventKind.CONNECT_CHORD),
        TrackEvent(TrackEventKind.CONNECT_NOTE),
    ]
    assert render(events) == "t120o4><v10:"


def test_rest_is_tied_with_r():
    assert render_event(TrackEvent.set_rest(20)) == "r4&r16"


def test_note_uses_pitch_and_length():
    note = Note(midi_key=66, position_in_tick=0, position_in_note_64=0, duration_in_note_64=24)
    assert render_event(TrackEvent.set_note(note)) == "f+4."


def test_tie_chain_repeats_pitch():
    assert render_tied("g+", 36) == "g+2&g+16"
    assert render_tied("c", 0) == ""


def test_render_preserves_event_order():
    note = Note(midi_key=60, position_in_tick=0, position_in_note_64=0, duration_in_note_64=16)
    events = [TrackEvent.set_rest(8), TrackEvent.set_octave(4), TrackEvent.set_note(note)]
    assert render(events) == "r8o4c4"
