"""HTTP dispatch surface."""
