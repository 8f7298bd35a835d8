"""
Focused Web Crawler

A keyword-driven, polite, concurrent web crawler that scores pages for
relevance and persists matching content blocks.
"""

__version__ = "1.0.0"
__description__ = "A focused web crawler that collects keyword-relevant content"
