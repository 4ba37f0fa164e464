from __future__ import annotations

from dataclasses import dataclass, asdict, fields
from pathlib import Path
import csv

@dataclass
class ManifestRow:
    source_path: str
    output_path: str
    status: str  # SUCCESS|FAILED|NOT_ATTEMPTED
    reason: str
    rating: str
    action: str  # COPIED|CONVERTED
    output_format: str
    resized: str  # YES|NO
    geotagged: str  # YES|NO
    fix_method: str  # EXACT|INTERPOLATED|CLAMPED|NONE

class ManifestWriter:
    def __init__(self, path: Path) -> None:
        self.path = path
        self._rows: list[ManifestRow] = []

    def add(self, row: ManifestRow) -> None:
        self._rows.append(row)

    def write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", newline="", encoding="utf-8") as f:
            w = csv.DictWriter(f, fieldnames=[fld.name for fld in fields(ManifestRow)])
            w.writeheader()
            for r in self._rows:
                w.writerow(asdict(r))
