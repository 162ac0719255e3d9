"""
Durable record store backed by a JSON file
Append-only; every write is a serialized read-modify-write of the whole collection
"""

import csv
import json
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from ..models.records import Record

STORAGE_KEY = "greenlens_detections"


class RecordStoreError(Exception):
    """Persisting or reading the record collection failed"""


class RecordStore:
    """
    Keeps all waste records in <data_dir>/<key>.json
    Thread-safe; concurrent appends never overwrite one another
    """

    def __init__(self, data_dir: str = "data", key: str = STORAGE_KEY):
        """
        Initialize record store

        Args:
            data_dir: Directory holding the store file
            key: Logical name of the record collection
        """
        self.data_dir = Path(data_dir)
        self.key = key
        self.path = self.data_dir / f"{key}.json"
        self.version = 0

        # Thread safety
        self.lock = threading.Lock()

        self.setup_logging()
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._initialize_file()

        self.logger.info(f"Record store initialized: {self.path}")

    def setup_logging(self):
        """Setup logging"""
        self.logger = logging.getLogger(__name__)

    def _initialize_file(self):
        """Create an empty collection file if it doesn't exist"""
        if not self.path.exists():
            self._write({
                self.key: [],
                "metadata": {"created": datetime.now().isoformat()},
            })

    def _read(self) -> Dict:
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except FileNotFoundError:
            return {self.key: [], "metadata": {}}
        except (OSError, ValueError) as e:
            raise RecordStoreError(f"Failed to read {self.path}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get(self.key, []), list):
            raise RecordStoreError(f"Malformed record collection in {self.path}")
        return data

    def _write(self, data: Dict):
        # Write beside the target then rename, so readers never see a partial file
        tmp_path = self.path.with_suffix(".json.tmp")
        try:
            with open(tmp_path, 'w') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise RecordStoreError(f"Failed to write {self.path}: {e}") from e

    def append(self, record: Record) -> Record:
        """
        Persist one record

        Args:
            record: Fully constructed record

        Returns:
            The stored record

        Raises:
            RecordStoreError: if the write failed; the store is left unchanged
        """
        with self.lock:
            data = self._read()
            data.setdefault(self.key, []).append(record.to_dict())
            data.setdefault("metadata", {})["last_updated"] = datetime.now().isoformat()
            self._write(data)
            self.version += 1

        self.logger.debug(f"Stored record {record.id} ({record.trash_type.value})")
        return record

    def list_all(self) -> List[Record]:
        """All records, oldest first"""
        with self.lock:
            rows = self._read().get(self.key, [])
        try:
            return [Record.from_dict(row) for row in rows]
        except (KeyError, TypeError, ValueError) as e:
            raise RecordStoreError(f"Malformed record in {self.path}: {e}") from e

    def count(self) -> int:
        with self.lock:
            return len(self._read().get(self.key, []))

    def export_csv(self, output_file: Optional[str] = None) -> str:
        """
        Export all records as CSV

        Args:
            output_file: Output file path, defaults to <data_dir>/<key>.csv

        Returns:
            Path to exported file
        """
        if output_file is None:
            output_file = self.data_dir / f"{self.key}.csv"

        headers = ["id", "trash_type", "confidence", "lat", "lng",
                   "created_at", "datetime", "description"]
        rows = []
        for record in self.list_all():
            row = record.to_dict()
            row["datetime"] = datetime.fromtimestamp(record.created_at / 1000.0).isoformat()
            row.setdefault("description", "")
            rows.append(row)

        with open(output_file, 'w', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=headers)
            writer.writeheader()
            writer.writerows(rows)

        self.logger.info(f"Exported {len(rows)} records to {output_file}")
        return str(output_file)
