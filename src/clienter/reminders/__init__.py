"""Reminders -- persisted due-time alerts and the engine that surfaces them.

repository.py reads and dismisses reminders; engine.py keeps a per-user
working set and active window and emits notifications through a notifier
(notifier.py) whenever a reminder enters the window.
"""
