"""Council — agents with persisted sessions, memory and remote tools."""
