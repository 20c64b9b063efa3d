"""Core cross-cutting concerns: configuration, logging, exceptions, resilience."""
