"""
Session Courier

Resilient client for a stateful, session-based messaging platform: one
long-lived connection with backed-off reconnects, a durable outbound delivery
queue, session persistence with backup, health monitoring and a per-sender
interaction guard.
"""

__version__ = "1.0.0"
