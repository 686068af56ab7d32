"""GPU capability report database importer."""
