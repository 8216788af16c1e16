"""
Core business logic for lesson scheduling.

This module is framework-agnostic - it doesn't import FastAPI, Snowflake,
or any infrastructure concerns. The calendar widget and the database are
collaborators reached through small protocols, so the scheduling rules can
be tested on their own.
"""
