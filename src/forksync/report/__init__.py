"""Status report assembly and export."""
