"""Client-side coordinator for remotely executed stack update operations."""
