"""Chunking, extraction and retry services."""
