"""
Shared infrastructure: configuration, logging, database, errors, health.
"""
