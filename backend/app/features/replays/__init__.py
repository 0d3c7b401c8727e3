"""Replays feature - upload, deduplication and catalog queries."""
