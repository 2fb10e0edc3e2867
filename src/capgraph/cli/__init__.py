"""capgraph command-line interface."""
