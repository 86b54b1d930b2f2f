"""Catalog feed reconciliation and sync."""
