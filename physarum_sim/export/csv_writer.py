"""Per-frame metrics log."""

import csv
from pathlib import Path
from typing import IO, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..model.state import FrameSnapshot


class CSVWriter:
    """
    Appends one metrics row per presented frame.

    The file and its header are created on the first append, so a run that
    never presents a frame leaves no file behind. Rows are flushed as they
    are written; an interrupted run keeps every completed frame.

    Columns: frame,steps,elapsed_time,agent_count,off_field,total_trail
    """

    FIELDNAMES = ['frame', 'steps', 'elapsed_time', 'agent_count',
                  'off_field', 'total_trail']

    def __init__(self, output_path: Path):
        self.output_path = Path(output_path)
        self.rows_written = 0
        self._stream: Optional[IO[str]] = None
        self._rows: Optional[csv.DictWriter] = None

    def append(self, snapshot: "FrameSnapshot") -> None:
        if self._rows is None:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            self._stream = open(self.output_path, 'w', newline='')
            self._rows = csv.DictWriter(self._stream, fieldnames=self.FIELDNAMES)
            self._rows.writeheader()
        self._rows.writerow(snapshot.to_csv_row())
        self._stream.flush()
        self.rows_written += 1

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
        self._stream = None
        self._rows = None
