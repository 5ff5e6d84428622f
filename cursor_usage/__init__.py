"""
Cursor usage monitor.

Polls the Cursor usage service, reconciles quota and team spend into a
single snapshot, and delivers a once-daily usage notification.
"""

__version__ = "0.3.0"
