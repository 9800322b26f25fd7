"""
trackvault: a content-addressed catalog for a personal audio library.

This package provides:
- Fingerprinting of precomputed audio analysis vectors into 128-bit keys.
- A SQLite-backed catalog of tracks keyed by fingerprint.
- Nearest-match search by audio similarity and by title.
- Reconciliation of the catalog against the files in the content store.
- A headless ingestion pipeline and a small command-line front end.
"""

__version__ = "0.3.0"
