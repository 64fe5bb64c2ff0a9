"""Fee discovery, claiming and allocation planning."""
