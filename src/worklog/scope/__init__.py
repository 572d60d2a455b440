"""Store topology: discovery, identifier resolution and scope management."""
