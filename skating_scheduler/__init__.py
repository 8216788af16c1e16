"""
Skating Scheduler - lesson calendar backend for a skating school.

This package contains the complete application:
- core: Framework-agnostic scheduling logic
- infrastructure: Snowflake persistence
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
