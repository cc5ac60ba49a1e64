"""Timesheet approval workflow and time-entry validation service."""

__version__ = "1.0.0"
