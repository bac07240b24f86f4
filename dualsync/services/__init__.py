"""Replication, migration and reconciliation services."""
