"""Durable background job queue with a recurring scheduler."""

__version__ = "0.1.0"
