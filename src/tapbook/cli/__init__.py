"""tapbook command line interface."""
