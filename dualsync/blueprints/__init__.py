"""HTTP blueprints."""

from dualsync.blueprints.monitoring import monitoring_bp

__all__ = ['monitoring_bp']
