"""Flow state, step dispatch and session handling."""
