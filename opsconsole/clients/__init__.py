"""HTTP clients for the console's remote backends."""
