"""
Replay Registry Application Package.

Accepts uploaded game replays, deduplicates them by fingerprint and serves
filtered, paginated queries over the replay catalog.
"""

__version__ = "1.0.0"
