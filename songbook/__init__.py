"""
Songbook: a small song catalog service.

Songs live as one file each in a file store; an in-memory full-text index
makes them searchable. Visitors search and view, the administrator creates,
edits and deletes.
"""

__version__ = "0.1.0"
