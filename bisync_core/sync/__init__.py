"""Change detection, batched translation and cache merge."""
