"""Relay PostgreSQL trigger notifications to Kafka"""

__version__ = "0.1.0"
