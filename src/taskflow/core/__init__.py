"""
Core subsystem.

Components:
- models.py: entities (User, Group, Task, ProgressLog, SubTask, SystemConfig)
- rules.py: pure domain rules (visibility, missed reports, coupling, workload)
- ports.py: Protocols the rest of the app depends on (adapters, notifier, session store)
- errors.py: error taxonomy
"""
