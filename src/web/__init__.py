"""HTTP surface of the routing policy service."""
