"""Shared infrastructure: database, logging, tracing, instrumentation, workers."""
