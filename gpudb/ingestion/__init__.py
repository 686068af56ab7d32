"""Bulk import pipeline for GPU capability report dumps."""
