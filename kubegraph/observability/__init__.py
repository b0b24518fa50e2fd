"""Observability: structlog configuration and Prometheus collectors."""
