from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4


@dataclass
class ReceiptStorage:
    """Receipt photos on disk, one directory per trip."""

    base_dir: Path

    def upload_path(self, trip_id: str, filename: str) -> Path:
        trip_id_safe = sanitize_identifier(trip_id)
        filename_safe = sanitize_filename(filename)
        trip_dir = self.base_dir / trip_id_safe
        trip_dir.mkdir(parents=True, exist_ok=True)
        path = trip_dir / filename_safe
        resolved = path.resolve()
        if not str(resolved).startswith(str(trip_dir.resolve())):
            raise ValueError("Unsafe upload path")
        return resolved

    def save_receipt(self, trip_id: str, filename: str, content: bytes) -> Path:
        # Unique prefix so two photos named "beleg.jpg" never collide.
        path = self.upload_path(trip_id, f"{uuid4().hex[:12]}-{filename}")
        with path.open("xb") as f:
            f.write(content)
        return path

    def delete_trip_receipts(self, trip_id: str) -> list[Path]:
        trip_dir = self.base_dir / sanitize_identifier(trip_id)
        if not trip_dir.exists():
            return []
        deleted: list[Path] = []
        for path in trip_dir.iterdir():
            if path.is_file():
                path.unlink()
                deleted.append(path)
        trip_dir.rmdir()
        return deleted


def sanitize_identifier(value: str) -> str:
    safe = re.sub(r"[^A-Za-z0-9_-]", "_", value)
    return safe.strip("_") or "trip"


def sanitize_filename(value: str) -> str:
    value = Path(value).name
    safe = re.sub(r"[^A-Za-z0-9._-]", "_", value)
    return safe or "upload.bin"
