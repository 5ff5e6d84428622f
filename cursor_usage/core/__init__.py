"""
Core modules for Cursor usage monitoring.

This package contains the synchronization pipeline: bounded retries,
the expiring cache, auth fingerprinting, usage reconciliation and the
daily notification scheduler.
"""
