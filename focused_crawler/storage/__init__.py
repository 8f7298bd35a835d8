"""
Storage layer for the focused crawler.
"""

from .database import ResultSink, StorageError
from .duplicate_detector import ContentFingerprints, fingerprint

__all__ = ['ResultSink', 'StorageError', 'ContentFingerprints', 'fingerprint']
