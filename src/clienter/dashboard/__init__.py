"""Dashboard overview -- recent clients, upcoming reminders and revenue stats."""
