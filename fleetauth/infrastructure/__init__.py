"""Infrastructure adapters (clock, keys, caches, stores)."""
