"""
Store Migration Application

Copies collections of records, and the files attached to them, from one
record store to another.

Supports:
- Flat collections (clear destination, re-create every record)
- Self-referential collections (create, then relink parents by new id)
- Single and multiple file attachment fields
- Per-record and per-attachment failure isolation
- PocketBase stores over the REST API
"""

__version__ = "0.1.0"
