"""Host-role plans."""
