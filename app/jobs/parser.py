"""Tolerant parser for yt-dlp progress output.

Recognized markers (grammar version 1):

  progress     ``[download]  42.3%``                       -> progress event
  destination  ``[download] Destination: <path>``           -> output path hint
  merger       ``[Merger] Merging formats into "<path>"``   -> output path hint

Any other line is ignored. The latest path marker wins, so a merge step
supersedes the raw download destination.
"""

import codecs
import re
from typing import List, Optional, Union

from app.jobs.models import ProgressEvent

GRAMMAR_VERSION = 1

PROGRESS_RE = re.compile(r"\[download\]\s+(\d+(?:\.\d*)?)%")
DESTINATION_RE = re.compile(r"\[download\] Destination: (.+)")
MERGER_RE = re.compile(r'\[Merger\] Merging formats into "(.+)"')

_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")


def clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, value))


class OutputParser:
    """Turns arbitrary chunks of worker stdout into progress events for one job.

    Chunks need not be line-aligned: an incomplete trailing line is held
    back until the rest of it arrives (or ``flush`` is called).

    Duplicate suppression compares against the last emitted percentage with
    exact float equality. Near-equal values that differ only by upstream
    rounding are still emitted.
    """

    def __init__(self, job_id: str):
        self.job_id = job_id
        self.last_percent: Optional[float] = None
        self.output_path: Optional[str] = None
        self._pending = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: Union[bytes, str]) -> List[ProgressEvent]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        text = self._pending + chunk
        # A trailing "\r" may be the first half of "\r\n"
        hold_cr = text.endswith("\r")
        if hold_cr:
            text = text[:-1]
        parts = _LINE_BREAK_RE.split(text)
        tail = parts.pop()
        self._pending = tail + "\r" if hold_cr else tail
        events = []
        for line in parts:
            event = self.parse_line(line)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> List[ProgressEvent]:
        """Parse whatever partial line is still buffered."""
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        events = []
        for line in _LINE_BREAK_RE.split(tail):
            event = self.parse_line(line)
            if event is not None:
                events.append(event)
        return events

    def parse_line(self, line: str) -> Optional[ProgressEvent]:
        if not line:
            return None

        merger = MERGER_RE.search(line)
        if merger:
            self.output_path = merger.group(1).strip()
            return None

        destination = DESTINATION_RE.search(line)
        if destination:
            self.output_path = destination.group(1).strip()
            return None

        progress = PROGRESS_RE.search(line)
        if progress:
            try:
                percent = clamp_percent(float(progress.group(1)))
            except ValueError:
                return None
            if percent == self.last_percent:
                return None
            self.last_percent = percent
            return ProgressEvent.progress(self.job_id, percent)

        return None
