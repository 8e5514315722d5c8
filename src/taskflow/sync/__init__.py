"""
Synchronization layer.

Components:
- replica.py: live read replica (one subscription per collection, wholesale snapshot replace)
- actions.py: write operations (validate, then write through the adapter; never patch the replica)
"""
