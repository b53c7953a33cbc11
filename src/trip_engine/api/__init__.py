"""HTTP boundary for the trip engine."""
