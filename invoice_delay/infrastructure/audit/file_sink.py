"""JSON file audit sink: one document per processing session"""

import json
from pathlib import Path
from typing import Any, Dict, List

from invoice_delay.domain.exceptions import PersistenceError
from invoice_delay.domain.models import SessionRecord

FILE_PREFIX = "transfer-session-"


class JsonFileAuditSink:
    """Writes session records as transfer-session-<local time>-<id>.json"""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    def filename_for(self, record: SessionRecord) -> str:
        stamp = record.timestamp.astimezone(record.tz).strftime("%Y-%m-%d-%H%M%S")
        suffix = record.session_id.rsplit("-", 1)[-1]
        return f"{FILE_PREFIX}{stamp}-{suffix}.json"

    def save(self, record: SessionRecord) -> str:
        path = self.data_dir / self.filename_for(record)
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            # exclusive create: an existing audit file is never overwritten
            with path.open("x", encoding="utf-8") as fh:
                json.dump(record.to_dict(), fh, indent=2)
        except OSError as e:
            raise PersistenceError(f"Could not write {path}: {e}") from e
        return str(path)

    def list_recent(self, limit: int = 20) -> List[Dict[str, Any]]:
        if not self.data_dir.is_dir():
            return []
        paths = sorted(self.data_dir.glob(f"{FILE_PREFIX}*.json"), reverse=True)[:limit]
        records = []
        for path in paths:
            try:
                records.append(json.loads(path.read_text(encoding="utf-8")))
            except (OSError, ValueError) as e:
                raise PersistenceError(f"Could not read {path}: {e}") from e
        return records
