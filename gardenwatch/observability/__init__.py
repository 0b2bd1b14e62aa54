"""Structured logging and Prometheus metrics for gardenwatch."""
