"""Chat orchestration, sessions, persistence and connection management."""
