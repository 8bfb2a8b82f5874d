"""Logging and Prometheus metrics for pipeline runs."""
