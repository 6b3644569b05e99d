"""Bus supervisor client: trip attendance state machine and its school API binding."""
