"""Activity record model, codec and freshness rule."""
