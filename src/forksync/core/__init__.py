"""Configuration, logging, errors, and shared records."""
