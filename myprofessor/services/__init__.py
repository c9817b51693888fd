"""Core services: metadata persistence, media handling, sharing and ingestion."""
