"""
Persistence adapters.

Components:
- base.py: typed collections, subscriber fan-out, config singleton view
- local_store.py: single-process SQLite store (fan-out of local writes only)
- shared_store.py: multi-client SQLAlchemy store (fan-out of every client's writes)
"""
