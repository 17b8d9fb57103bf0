"""Git access: command gateway and output parsing."""
