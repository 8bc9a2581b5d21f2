"""
docjoin - relate tabular datasets and materialize nested JSON documents.

Tables are imported from CSV/TSV/JSON/JSONL files (or archives of them),
linked by column-level relationships, and joined into one hierarchical
document per lead row.
"""

__version__ = "0.1.0"
