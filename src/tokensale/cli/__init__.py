"""tokensale command line interface."""
