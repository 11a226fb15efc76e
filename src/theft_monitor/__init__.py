"""Street distribution network simulation with power-loss theft detection."""
