"""
Infrastructure layer - external service integrations.

- snowflake: lesson documents and client key-value storage

These wrappers translate between external formats and our domain models.
"""
