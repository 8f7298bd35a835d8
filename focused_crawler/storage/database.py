"""
Result storage for matched content.

Results live in a single pretty-printed JSON array that is rewritten in full
on every append batch.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List


class StorageError(Exception):
    """Raised when the result store cannot be read or written."""
    pass


class ResultSink:
    """
    Appends results to a JSON array file under one global lock.

    Each append is a read-merge-write of the whole collection, so the cost of
    a call grows with the number of results already stored.
    """

    def __init__(self, output_file: str):
        self.output_file = Path(output_file)
        self.logger = logging.getLogger(__name__)
        self._lock = asyncio.Lock()
        self.stats = {
            'total_stored': 0,
            'batches_written': 0,
            'batches_lost': 0,
        }

    def _read_existing(self) -> List[Dict[str, Any]]:
        if not self.output_file.exists() or self.output_file.stat().st_size == 0:
            return []

        with open(self.output_file, 'r', encoding='utf-8') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise StorageError(f"Result store {self.output_file} is not valid JSON: {e}") from e

        if not isinstance(data, list):
            raise StorageError(f"Result store {self.output_file} does not hold a JSON array")
        return data

    def _write_all(self, results: List[Dict[str, Any]]):
        self.output_file.parent.mkdir(parents=True, exist_ok=True)

        # Write to a sibling temp file and swap it in, so readers never see a torn file
        fd, tmp_path = tempfile.mkstemp(
            dir=self.output_file.parent, prefix=f".{self.output_file.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(results, f, ensure_ascii=False, indent=4)
            os.replace(tmp_path, self.output_file)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def _merge_and_write(self, new_results: List[Dict[str, Any]]) -> int:
        results = self._read_existing()
        results.extend(new_results)
        self._write_all(results)
        return len(results)

    async def append_results(self, items: Iterable) -> bool:
        """
        Persist a batch of ScoredContentItem objects (or plain dicts).

        Returns:
            True if the batch was written, False if it was lost
        """
        batch = [item if isinstance(item, dict) else item.to_dict() for item in items]
        if not batch:
            return True

        async with self._lock:
            try:
                total = await asyncio.to_thread(self._merge_and_write, batch)
            except (OSError, StorageError, TypeError, ValueError) as e:
                self.stats['batches_lost'] += 1
                self.logger.critical(
                    f"Failed to save {len(batch)} results to {self.output_file}: {e}"
                )
                return False

            self.stats['total_stored'] += len(batch)
            self.stats['batches_written'] += 1
            self.logger.debug(f"Saved {len(batch)} results ({total} total) to {self.output_file}")
            return True

    def load_results(self) -> List[Dict[str, Any]]:
        """Read the whole result collection."""
        try:
            return self._read_existing()
        except OSError as e:
            raise StorageError(f"Cannot read {self.output_file}: {e}") from e

    def get_stats(self) -> Dict[str, Any]:
        """Get storage statistics."""
        return {**self.stats, 'output_file': str(self.output_file)}
