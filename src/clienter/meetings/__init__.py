"""Meeting scheduling -- meetings and the reminder each one owns.

Creating a meeting inserts exactly one reminder in the same transaction;
editing the meeting time or lead time re-arms it; deleting the meeting
cascades to the reminder.
"""
