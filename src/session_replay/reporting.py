"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from .compression import format_gap_duration
from .models import KeystrokeEvent, keystroke_filename
from .session import ReplaySession


class SessionSummaryPrinter:
    """Render human-readable session summaries in the console."""

    def __init__(self, session: ReplaySession) -> None:
        self.session = session

    def print_summary(self) -> None:
        session = self.session
        for warning in session.warnings:
            print(f"Warning: {warning}")
        for error in session.file_errors.values():
            print(f"Error: {error}")
        start = session.session_start_time
        end = session.session_end_time
        if start is None or end is None:
            print("No keystrokes recorded for this session.")
            return

        print(f"Session {start:%Y-%m-%d %H:%M:%S} -> {end:%Y-%m-%d %H:%M:%S}")
        print("-" * 40)
        print(f"Events:      {len(session.events)}")
        print(f"Keystrokes:  {len(session.keystrokes)}")
        print(f"Duration:    {format_duration((end - start).total_seconds())}")
        print(f"Segments:    {len(session.segments)}")

        totals = aggregate_by_file(session.keystrokes)
        if totals:
            print()
            print("Keystrokes per file:")
            for filename, count in totals:
                print(f"  {filename:<30} {count:>8}")

        compression = session.compression
        if compression is not None:
            print()
            print(f"Compressed:  {format_duration(compression.total_compressed_duration / 1000)}")
            print(f"Ratio:       {compression.compression_ratio:.4f}")
            self.print_gaps()

    def print_gaps(self) -> None:
        compression = self.session.compression
        if compression is None or not compression.gaps:
            print("No inactivity gaps above the threshold.")
            return
        print(f"Gaps removed ({len(compression.gaps)}):")
        for gap in compression.gaps:
            print(
                f"  {gap.start_time:%H:%M:%S} -> {gap.end_time:%H:%M:%S}  "
                f"{format_gap_duration(gap.duration):>7}  "
                f"#{gap.start_keystroke_index}-#{gap.end_keystroke_index}  {gap.reason}"
            )


def aggregate_by_file(keystrokes: Iterable[KeystrokeEvent]) -> list[tuple[str, int]]:
    totals: defaultdict[str, int] = defaultdict(int)
    for event in keystrokes:
        totals[keystroke_filename(event)] += 1
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
