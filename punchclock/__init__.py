"""Attendance capture and punch deduplication server for the repair shop suite."""

__version__ = "1.0.0"
