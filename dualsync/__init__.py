"""
dualsync - Dual-Write Replication and Batch Migration Engine

Keeps the legacy MongoDB document store and the PostgreSQL relational store
consistent during a live cutover: historical backfill, live mutation mirroring,
count-based drift detection and re-runnable, resumable migration state.

Package layout:
- models: Flask-SQLAlchemy target models and the migration_sync state table
- transformers: typed per-entity document to row mappers
- services: id translation, upsert writer, dispatcher, batch driver, verifier
- blueprints: monitoring HTTP surface
- cli: Flask CLI commands (migrate, reconcile)
"""

__version__ = '1.0.0'
