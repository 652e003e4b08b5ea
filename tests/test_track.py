"""Tests for the track builder (MIDI events -> MML track events)."""

import logging

import mido

from midi_to_mml.models import TrackEventKind
from midi_to_mml.parser import Parser
from midi_to_mml.track import Track, TrackBuilder, velocity_to_level


def on(note, time=0, velocity=64):
    return mido.Message("note_on", note=note, velocity=velocity, time=time)


def off(note, time=0):
    return mido.Message("note_off", note=note, velocity=0, time=time)


def build(messages, ppq=480, **kwargs):
    return Track.from_messages(messages, ppq, **kwargs)


def kinds(track):
    return [e.kind for e in track.events]


def test_single_quarter_note():
    assert build([on(60), off(60, 480)]).to_mml() == "o4c4"


def test_leading_rest():
    assert build([on(60, 480), off(60, 480)]).to_mml() == "r4o4c4"


def test_gap_becomes_rest():
    track = build([on(60), off(60, 480), on(62, 480), off(62, 480)])
    assert track.to_mml() == "o4c4r4o4d4"


def test_note_starting_where_previous_ended_is_connected():
    track = build([on(60), off(60, 480), on(62), off(62, 480)])
    assert track.to_mml() == "o4c4:o4d4"
    assert kinds(track) == [
        TrackEventKind.OCTAVE,
        TrackEventKind.NOTE,
        TrackEventKind.CONNECT_CHORD,
        TrackEventKind.OCTAVE,
        TrackEventKind.NOTE,
    ]
    assert Parser.parse(track.to_mml()).notes[1].is_connected_to_prev_note


def test_chord_uses_connect_chord():
    track = build([
        on(60), on(64), on(67),
        off(60, 480), off(64), off(67),
        on(60, 240), off(60, 480),
    ])
    assert track.to_mml() == "o4c4:o4e4:o4g4r8o4c4"
    assert kinds(track).count(TrackEventKind.CONNECT_CHORD) == 2


def test_same_octave_is_set_again():
    track = build([on(60), off(60, 480), on(64, 480), off(64, 480)])
    assert kinds(track).count(TrackEventKind.OCTAVE) == 2
    octaves = [e.value for e in track.events if e.kind == TrackEventKind.OCTAVE]
    assert octaves == [4, 4]


def test_octave_steps_use_relative_commands():
    up = build([on(60), off(60, 480), on(72), off(72, 480)])
    down = build([on(60), off(60, 480), on(48), off(48, 480)])
    assert up.to_mml() == "o4c4:>c4"
    assert down.to_mml() == "o4c4:<c4"
    assert kinds(up).count(TrackEventKind.OCTAVE) == 1
    assert kinds(down).count(TrackEventKind.OCTAVE) == 1


def test_octave_jump_sets_absolute_octave():
    track = build([on(60), off(60, 480), on(84), off(84, 480)])
    assert track.to_mml() == "o4c4:o6c4"
    octaves = [e.value for e in track.events if e.kind == TrackEventKind.OCTAVE]
    assert octaves == [4, 6]


def test_tempo_event():
    tempo = mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(150))
    assert build([tempo, on(60), off(60, 480)]).to_mml() == "t150o4c4"


def test_note_on_velocity_zero_closes_note():
    assert build([on(60), on(60, 240, velocity=0)]).to_mml() == "o4c8"


def test_unmatched_note_off_is_ignored():
    assert build([off(61), on(60), off(60, 480), off(60, 480)]).to_mml() == "o4c4"


def test_open_note_closed_at_end_of_track():
    track = build([on(60), mido.MetaMessage("end_of_track", time=960)])
    assert track.to_mml() == "o4c2"
    assert not track.notes[0].is_open


def test_other_messages_are_ignored():
    track = build([
        mido.Message("control_change", control=7, value=100),
        mido.Message("pitchwheel", pitch=200),
        on(60),
        mido.Message("program_change", program=3, time=120),
        off(60, 360),
    ])
    assert track.to_mml() == "o4c4"


def test_long_note_renders_as_tie_chain():
    assert build([on(60), off(60, 600)]).to_mml() == "o4c4&c16"


def test_sharp_note():
    assert build([on(61), off(61, 480)]).to_mml() == "o4c+4"


def test_onset_while_previous_is_held_becomes_rest():
    # The held note has no length yet, so the gap runs from its onset
    track = build([on(60), on(64, 240), off(60, 240), off(64, 240)])
    assert track.to_mml() == "o4c4r8o4e4"
    assert TrackEventKind.REST in kinds(track)
    assert TrackEventKind.CONNECT_NOTE not in kinds(track)


def test_onset_before_previous_end_uses_connect_note():
    # A zero-length note still lasts one 64th, so the next onset falls inside it
    track = build([on(60), off(60), on(62), off(62, 480)])
    assert TrackEventKind.CONNECT_NOTE in kinds(track)
    assert track.to_mml() == "o4c64o4d4"


def test_retriggered_key_closes_previous_note():
    track = build([on(60), on(60, 240), off(60, 240)])
    assert track.to_mml() == "o4c8:o4c8"
    assert track.note_count == 2


def test_zero_length_note_gets_minimum_length():
    assert build([on(60), off(60)]).to_mml() == "o4c64"


def test_keys_below_octave_zero_are_logged(caplog):
    with caplog.at_level(logging.DEBUG, logger="midi_to_mml.track"):
        track = build([on(5), off(5, 480)])
    assert track.to_mml() == "o0f4"
    assert "below o0" in caplog.text


def test_velocity_levels():
    assert velocity_to_level(127) == 15
    assert velocity_to_level(0) == 0
    assert velocity_to_level(100) == 12


def test_emit_velocity_only_on_change():
    track = build(
        [on(60, velocity=127), off(60, 480), on(62, velocity=127), off(62, 480), on(64, velocity=34), off(64, 480)],
        emit_velocity=True,
    )
    assert track.to_mml() == "o4v15c4:o4d4:o4v4e4"


def test_quantized_note_fields():
    builder = TrackBuilder(ppq=480)
    for msg in [on(60, 480), off(60, 240)]:
        builder.feed(msg)
    note = builder.finish()[-1].value
    assert note.position_in_tick == 480
    assert note.position_in_note_64 == 16
    assert note.duration_in_tick == 240
    assert note.duration_in_note_64 == 8
    assert note.duration == "8"
    assert note.octave == 4


def test_debug_output_lists_events():
    debug = build([on(60), off(60, 480)]).to_mml_debug()
    lines = debug.splitlines()
    assert len(lines) == 2
    assert "OCTAVE" in lines[0] and "o4" in lines[0]
    assert "NOTE" in lines[1] and "c4" in lines[1]


def test_encode_decode_keeps_pitch_octave_and_length():
    track = build([
        on(60), on(64), off(60, 480), off(64),
        on(73), off(73, 600),
        on(45, 240), off(45, 480),
    ])
    mml = track.to_mml()
    assert mml == "o4c4:o4e4:>c+4&c+16r8o2a4"

    decoded = [n for n in Parser.parse(mml).notes if not n.is_rest]
    assert len(decoded) == len(track.notes)
    for note, event in zip(track.notes, decoded):
        assert event.pitch + ("+" if event.is_sharp else "") == note.pitch
        assert event.octave == note.octave
        assert event.duration_in_note_64 == note.duration_in_note_64
        assert event.midi_key == note.midi_key
    assert decoded[1].is_connected_to_prev_note
