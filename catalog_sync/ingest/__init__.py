"""Ingestion helpers."""
