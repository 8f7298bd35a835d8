"""
Duplicate content detection using content fingerprints.
"""

import hashlib
from typing import Dict, Set


def fingerprint(text: str) -> str:
    """
    Hash normalized text.

    Case and whitespace differences do not change the fingerprint.
    """
    normalized = ' '.join(text.lower().split())
    return hashlib.sha256(normalized.encode('utf-8')).hexdigest()


class ContentFingerprints:
    """
    Set of content fingerprints already emitted.

    One instance per worker by default, so it needs no locking: it is only
    ever touched between awaits of a single task.
    """

    def __init__(self):
        self._seen: Set[str] = set()
        self.stats = {
            'total_checks': 0,
            'duplicates': 0,
        }

    def check_and_add(self, text: str) -> bool:
        """Return True if `text` has not been seen before, recording it."""
        self.stats['total_checks'] += 1
        digest = fingerprint(text)
        if digest in self._seen:
            self.stats['duplicates'] += 1
            return False
        self._seen.add(digest)
        return True

    def __contains__(self, text: str) -> bool:
        return fingerprint(text) in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def get_stats(self) -> Dict[str, int]:
        return {**self.stats, 'total_fingerprints': len(self._seen)}
