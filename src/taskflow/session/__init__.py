"""
Session and routing.

Components:
- controller.py: SETUP / LOGIN / AUTHENTICATED state machine, view routing, access control
- deeplink.py: taskId query parameter parsing and stripping
- store.py: persisted identity across restarts
"""
