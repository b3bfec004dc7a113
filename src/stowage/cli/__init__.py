"""stowage command line interface."""
