"""Connection lifecycle: states, events, transport boundary and manager."""
