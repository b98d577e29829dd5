"""Filesystem discovery of per-site channel fragments."""
