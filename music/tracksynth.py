#!/usr/bin/env python3
# ======================================================================
# Tracksynth -- Spuren-Synthesizer für Textpartituren
# ======================================================================
# Version vom 18. Okt. 2026.
#
# Liest eine einfache Textpartitur mit benannten Spuren und wandelt
# sie in einen einzigen Mono-PCM-Puffer (16 bit, 44100 Hz) um. Jede
# Note ist ein reiner Sinuston ohne Hüllkurve; alle Spuren werden
# Sample für Sample addiert und bei Überlauf hart begrenzt.
#
# EINGABEFORMAT:
#   # Kommentar
#   track melodie {
#       [delta_ms, frequenz_hz, dauer_ms]
#       [0, 440, 250]
#   }
#
# VERWENDUNG:
#   python3 tracksynth.py <eingabedatei>
#
# Das Abspielen des Puffers ist nicht Teil dieses Programms. Das
# Ergebnis (Waveform) wird an einen Abspieler weitergereicht, der sich
# um Audiogerät und Wiedergabe kümmert.
# ======================================================================

import argparse
import collections
import enum
import math
import sys

import numpy as np

SAMPLE_RATE = 44100
GAIN = 0.2
INT16_MIN = -32768
INT16_MAX = 32767


# ======================================================================
# HILFSFUNKTIONEN: Zeilen normalisieren
# ======================================================================

def trim(line):
    # Nur Leerzeichen und Tabs, andere Whitespace-Zeichen bleiben stehen
    return line.strip(" \t")


def is_skippable(line):
    """Leerzeile oder Kommentar (beginnt mit '#')."""
    return not line or line.startswith("#")


# ======================================================================
# DATENMODELL
# ======================================================================

# delta_time: Abstand in ms zum ENDE der vorherigen Note derselben Spur
# frequency:  Tonhöhe in Hz
# duration:   Dauer in ms
Note = collections.namedtuple("Note", ["delta_time", "frequency", "duration"])


class Track:
    """Eine benannte Spur mit Noten in Abspielreihenfolge.

    start_times_ms wird erst beim Schließen des Blocks berechnet und
    läuft parallel zu notes.
    """
    def __init__(self, name, notes=None):
        self.name = name
        self.notes = list(notes) if notes else []
        self.start_times_ms = []

    def end_times_ms(self):
        return [start + note.duration
                for start, note in zip(self.start_times_ms, self.notes)]

    @property
    def end_time_ms(self):
        return max(self.end_times_ms(), default=0.0)

    def __eq__(self, other):
        if not isinstance(other, Track):
            return NotImplemented
        return (self.name == other.name and self.notes == other.notes
                and self.start_times_ms == other.start_times_ms)

    def __repr__(self):
        return f"Track({self.name!r}, {len(self.notes)} Noten)"


# ======================================================================
# ZEITACHSE: Absolute Startzeiten
# ======================================================================
# Die erste Note startet bei ihrem Delta. Jede weitere Note startet
# am Ende der vorherigen plus ihrem eigenen Delta:
#
#   start[i] = start[i-1] + dauer[i-1] + delta[i]
#
# Innerhalb einer Spur überlappen Noten daher nie, zwischen Spuren
# dagegen beliebig.
# ======================================================================

def compute_start_times(track):
    if not track.notes:
        return

    first = track.notes[0]
    starts = [float(first.delta_time)]
    for prev, note in zip(track.notes, track.notes[1:]):
        starts.append(starts[-1] + prev.duration + note.delta_time)
    track.start_times_ms = starts


# ======================================================================
# KLASSE: ScoreParser
# ======================================================================
# Zeilenweiser Zustandsautomat mit zwei Zuständen:
#
#   OUTSIDE: wartet auf "track <name> {"
#   INSIDE:  sammelt Notenzeilen "[delta, freq, dauer]" bis "}"
#
# Fehlerhafte Zeilen werden gemeldet und übersprungen, der Parser
# läuft im aktuellen Zustand weiter. Nur eine leere Partitur ist
# fatal, das entscheidet aber der Aufrufer.
# ======================================================================

class ParserState(enum.Enum):
    OUTSIDE = "outside"
    INSIDE = "inside"


class ScoreParser:
    TRACK_TOKEN = "track"

    def __init__(self, stream=None):
        # None heißt: sys.stderr zum Zeitpunkt der Meldung
        self.stream = stream
        self.diagnostics = []
        self._reset()

    def _reset(self):
        self.state = ParserState.OUTSIDE
        self.current = None
        self.tracks = []

    def _report(self, message):
        self.diagnostics.append(message)
        print(message, file=self.stream or sys.stderr)

    # ------------------------------------------------------------------
    # Einstiegspunkte
    # ------------------------------------------------------------------
    def parse(self, text):
        return self.parse_lines(text.split("\n"))

    def parse_file(self, path):
        # Fremde Bytes (z.B. Latin-1-Umlaute in Kommentaren) dürfen das
        # Parsen nicht abbrechen
        with open(path, encoding="utf-8", errors="replace") as f:
            return self.parse_lines(f)

    def parse_lines(self, lines):
        self._reset()
        self.diagnostics = []

        for raw in lines:
            self._feed(trim(raw.rstrip("\n")))

        # Unvollständiger Block am Dateiende wird stillschweigend verworfen
        tracks = self.tracks
        self._reset()
        return tracks

    # ------------------------------------------------------------------
    # Zustandsautomat
    # ------------------------------------------------------------------
    def _feed(self, line):
        if is_skippable(line):
            return

        if self.state is ParserState.OUTSIDE:
            self._parse_header(line)
        else:
            self._parse_block_line(line)

    def _parse_header(self, line):
        # Zeilen außerhalb eines Blocks, die nicht mit "track" beginnen,
        # werden ignoriert
        if not line.startswith(self.TRACK_TOKEN):
            return

        brace_pos = line.find("{")
        if brace_pos == -1:
            self._report("Syntaxfehler: '{' fehlt in der Spurdefinition: " + line)
            return

        name = trim(line[len(self.TRACK_TOKEN):brace_pos])
        if not name:
            self._report("Syntaxfehler: Spur ohne Namen: " + line)
            return

        self.state = ParserState.INSIDE
        self.current = Track(name)

        # Inhalt hinter '{' gehört bereits zum Block (z.B. "track t { [0, 440, 100] }")
        rest = trim(line[brace_pos + 1:])
        if rest:
            self._feed(rest)

    def _parse_block_line(self, line):
        close_pos = line.find("}")
        if close_pos != -1:
            head = trim(line[:close_pos])
            if head:
                self._parse_note_line(head)
            self._close_track()
            return

        self._parse_note_line(line)

    def _close_track(self):
        track = self.current
        if track.notes:
            compute_start_times(track)
            self.tracks.append(track)
        else:
            self._report(f"WARNUNG: Spur '{track.name}' enthält keine Noten. Wird übersprungen.")

        self.state = ParserState.OUTSIDE
        self.current = None

    def _parse_note_line(self, line):
        if not line.startswith("["):
            self._report("Ungültiges Notenformat: " + line)
            return

        note = self.parse_note(line)
        if note is None:
            self._report("Note konnte nicht gelesen werden: " + line)
            return

        self.current.notes.append(note)

    @staticmethod
    def parse_note(line):
        """Liest "[delta, freq, dauer]" ein, None bei Fehler.

        Kommas sind optionale Trenner, beliebiger Whitespace geht
        ebenfalls. Überzählige Felder werden ignoriert.
        """
        end = line.find("]")
        if not line.startswith("[") or end == -1:
            return None

        fields = line[1:end].replace(",", " ").split()
        if len(fields) < 3:
            return None

        # int() und float() akzeptieren auch "1_000" und Unicode-Ziffern
        if not all(tok.isascii() and "_" not in tok for tok in fields[:3]):
            return None

        try:
            delta = int(fields[0])
            freq = float(fields[1])
            duration = int(fields[2])
        except ValueError:
            return None

        if delta < 0 or duration < 0:
            return None
        if not math.isfinite(freq) or freq <= 0:
            return None

        return Note(delta, freq, duration)


# ======================================================================
# KLASSE: Synth
# ======================================================================
# Zwei Durchläufe über alle Noten aller Spuren:
# 1. Größe: Ende der letzten Note bestimmt die Pufferlänge.
# 2. Rendern: Jede Note wird als Sinus ab ihrem eigenen Einsatz
#    erzeugt (Phase startet bei 0) und in den Puffer addiert.
#
# Nach jeder Addition wird auf den 16-bit-Bereich begrenzt. Samples
# jenseits des Puffers werden verworfen, der Puffer wächst nie.
# ======================================================================

class Waveform(collections.namedtuple("Waveform", ["samples", "sample_rate"])):
    """Fertiger PCM-Puffer (int16, mono, schreibgeschützt) + Samplerate."""
    __slots__ = ()

    @property
    def duration_sec(self):
        if self.sample_rate <= 0:
            return 0.0
        return len(self.samples) / self.sample_rate


class Synth:
    def __init__(self, sample_rate=SAMPLE_RATE, gain=GAIN):
        self.sample_rate = sample_rate
        self.gain = gain
        # 20 % von Vollausschlag, Headroom für überlappende Spuren
        self.max_amplitude = INT16_MAX * gain

    def _ms_to_samples(self, ms):
        return int(ms * self.sample_rate / 1000.0)

    def total_samples(self, tracks):
        max_end_time = 0.0
        for track in tracks:
            for start, note in zip(track.start_times_ms, track.notes):
                max_end_time = max(max_end_time, start + note.duration)
        return self._ms_to_samples(max_end_time)

    def _generate_wave(self, freq, num_samples):
        # Zeit relativ zum Einsatz der Note, nicht zum Pufferanfang
        t = np.arange(num_samples) / self.sample_rate
        signal = np.sin(2 * np.pi * freq * t) * self.max_amplitude
        # Ganzzahlumwandlung schneidet Richtung 0 ab
        return np.trunc(signal).astype(np.int32)

    def render(self, tracks):
        # int32 zum Akkumulieren, damit die Summe vor dem Begrenzen
        # nicht überläuft
        buffer = np.zeros(self.total_samples(tracks), dtype=np.int32)

        for track in tracks:
            for start_time, note in zip(track.start_times_ms, track.notes):
                start_s = self._ms_to_samples(start_time)
                duration_s = self._ms_to_samples(note.duration)

                end_s = min(start_s + duration_s, len(buffer))
                if end_s <= start_s:
                    continue

                wave_data = self._generate_wave(note.frequency, end_s - start_s)
                mixed = buffer[start_s:end_s] + wave_data
                buffer[start_s:end_s] = np.clip(mixed, INT16_MIN, INT16_MAX)

        samples = buffer.astype(np.int16)
        samples.flags.writeable = False
        return Waveform(samples, self.sample_rate)


# ======================================================================
# ERGONOMISCHE BENUTZER-SCHNITTSTELLE
# ======================================================================

class EmptyScoreError(ValueError):
    pass


class Score:
    def __init__(self, tracks=None):
        self.tracks = list(tracks) if tracks else []

    @classmethod
    def from_text(cls, text, stream=None):
        return cls(ScoreParser(stream).parse(text))

    @classmethod
    def from_file(cls, path, stream=None):
        return cls(ScoreParser(stream).parse_file(path))

    def __iter__(self):
        return iter(self.tracks)

    def __len__(self):
        return len(self.tracks)

    @property
    def note_count(self):
        return sum(len(track.notes) for track in self.tracks)

    @property
    def end_time_ms(self):
        return max((track.end_time_ms for track in self.tracks), default=0.0)

    def check(self):
        if not self.tracks:
            raise EmptyScoreError("Keine gültigen Spuren gefunden!")
        if self.note_count == 0:
            raise EmptyScoreError("Partitur enthält keine Noten!")

    def render(self, synth=None):
        self.check()

        if synth is None:
            synth = Synth()
        return synth.render(self.tracks)


# ======================================================================
# MAIN
# ======================================================================

def main(argv=None):
    parser_args = argparse.ArgumentParser(
        prog="tracksynth",
        description="Wandelt eine Textpartitur in einen 16-bit-PCM-Puffer um")
    parser_args.add_argument("filename", help="Pfad zur Partiturdatei")

    # argparse beendet mit Code 2, hier gilt 1 für jeden Bedienfehler
    try:
        args = parser_args.parse_args(argv)
    except SystemExit as e:
        return 1 if e.code else 0

    print(f"Lese Partitur: {args.filename}...")
    try:
        score = Score.from_file(args.filename)
    except OSError as e:
        print(f"FEHLER: Datei konnte nicht gelesen werden: {e}", file=sys.stderr)
        return 1

    print(f"{len(score)} Spuren gefunden ({score.note_count} Noten).")

    # Leere Partitur: keine Synthese versuchen
    try:
        score.check()
    except EmptyScoreError as e:
        print(f"FEHLER: {e}", file=sys.stderr)
        return 1

    print("Synthetisiere Audio...")
    waveform = score.render()

    print(f"{len(waveform.samples)} Samples ({waveform.duration_sec:.2f} s) "
          f"bei {waveform.sample_rate} Hz erzeugt.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
