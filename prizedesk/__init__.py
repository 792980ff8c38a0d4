"""Prize draw allocation and claim engine."""
