"""Protected-area registry and feature integrity checks."""
