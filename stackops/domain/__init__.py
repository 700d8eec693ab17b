"""Domain value objects, ports, and error types shared across layers."""
