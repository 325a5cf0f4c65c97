"""HTTP surface for the cost engine."""
