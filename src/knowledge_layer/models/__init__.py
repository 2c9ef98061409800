"""Data models for the knowledge layer."""
