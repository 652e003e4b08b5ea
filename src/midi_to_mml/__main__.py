"""Entry point for `python -m midi_to_mml` or the `midi-to-mml` console script."""

import argparse
import logging
import sys
import threading

from midi_to_mml.player import MmlPlayer, TrackBatchError
from midi_to_mml.song_loader import SongLoadError, SongOptions, load_song, track_count


def _merge_pair(value: str) -> tuple[int, int]:
    try:
        into, source = value.split(":")
        return int(into), int(source)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected INTO:FROM, got {value!r}") from None


def _play_until_interrupted(player: MmlPlayer) -> None:
    """Run playback off the main thread so Ctrl-C can stop it between notes."""
    errors: list[TrackBatchError] = []

    def run() -> None:
        try:
            player.play()
        except TrackBatchError as exc:
            errors.append(exc)

    worker = threading.Thread(target=run, name="mml-player")
    worker.start()
    try:
        while worker.is_alive():
            worker.join(0.2)
    except KeyboardInterrupt:
        player.stop()
        worker.join()
    if errors:
        raise errors[0]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="MIDI to MML transcoder and player")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    convert = commands.add_parser("convert", help="Print one MML line per track")
    convert.add_argument("file", help="MIDI file")
    convert.add_argument("--merge", type=_merge_pair, action="append", default=[],
                         metavar="INTO:FROM", help="Merge track FROM into track INTO")
    convert.add_argument("--velocity", action="store_true", help="Emit v<level> commands")
    convert.add_argument("--split", action="store_true", help="Split overlapping notes into separate tracks")
    convert.add_argument("--debug", action="store_true", help="Print one event per line")

    count = commands.add_parser("count", help="Print the number of tracks in a MIDI file")
    count.add_argument("file", help="MIDI file")

    play = commands.add_parser("play", help="Play a MIDI file through its MML transcription")
    play.add_argument("file", help="MIDI file")
    play.add_argument("--soundfont", required=True, help="SoundFont (.sf2) to play with")
    play.add_argument("--merge", type=_merge_pair, action="append", default=[], metavar="INTO:FROM")
    play.add_argument("--split", action="store_true", help="Split overlapping notes into separate tracks")
    play.add_argument("--driver", default=None, help="FluidSynth audio driver")
    return parser


def main() -> None:
    args = _build_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        if args.command == "count":
            print(track_count(args.file))
            return

        options = SongOptions(
            merge_tracks=args.merge,
            emit_velocity=getattr(args, "velocity", False),
            split_tracks=args.split,
        )
        song = load_song(args.file, options)

        if args.command == "convert":
            for track in song.tracks:
                print(f"# {track.name or 'Untitled'} - {track.instrument.name} - {track.note_count} notes")
                print(track.to_mml_debug() if args.debug else track.to_mml())
            return

        from midi_to_mml.synth import FluidSynthOutput

        output = FluidSynthOutput(args.soundfont, driver=args.driver)
        try:
            player = MmlPlayer.from_song(song, output.connection())
            _play_until_interrupted(player)
        finally:
            output.shutdown()
    except (SongLoadError, TrackBatchError, OSError) as exc:
        logging.getLogger("midi_to_mml").error("%s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
