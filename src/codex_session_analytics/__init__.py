"""Usage analytics for recorded Codex agent sessions."""
