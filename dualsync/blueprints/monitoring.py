"""
Dual-Write Monitoring Blueprint

Read-mostly operational endpoints for the live replication path.

Endpoints:
- GET  /dual-write/failures        per ``Entity:operation`` failure counters
- POST /dual-write/failures/reset  clear the counters
- GET  /dual-write/status          gate state (flag, target availability)
- GET  /dual-write/drift/<entity>  source/target count comparison
"""

import structlog
from flask import Blueprint, abort, current_app, jsonify, request

from dualsync.transformers import MIGRATION_ORDER, TRANSFORMER_REGISTRY

logger = structlog.get_logger(__name__)

monitoring_bp = Blueprint('monitoring', __name__, url_prefix='/dual-write')


def _services():
    return current_app.extensions['dualsync']


@monitoring_bp.route('/failures', methods=['GET'])
def get_failures():
    dispatcher = _services().dispatcher
    failures = dispatcher.get_failure_counters()
    return jsonify({
        'failures': failures,
        'total': sum(failures.values()),
    }), 200


@monitoring_bp.route('/failures/reset', methods=['POST'])
def reset_failures():
    dispatcher = _services().dispatcher
    previous = dispatcher.get_failure_counters()
    dispatcher.reset_failure_counters()
    logger.info("failure_counters_reset_via_api", remote_addr=request.remote_addr,
                cleared=sum(previous.values()))
    return jsonify({'reset': True, 'cleared': previous}), 200


@monitoring_bp.route('/status', methods=['GET'])
def get_status():
    services = _services()
    dispatcher = services.dispatcher
    target_available = services.target.is_available()
    return jsonify({
        'enabled': dispatcher.enabled,
        'target_available': target_available,
        'active': dispatcher.enabled and target_available,
        'pending': dispatcher.pending,
        'source_configured': services.source is not None,
        'entity_types': MIGRATION_ORDER,
    }), 200


@monitoring_bp.route('/drift/<entity_type>', methods=['GET'])
def get_drift(entity_type: str):
    if entity_type not in TRANSFORMER_REGISTRY:
        abort(404, description=f"Unknown entity type: {entity_type}")

    verifier = _services().verifier
    if verifier is None:
        abort(503, description="Source store is not configured")

    report = verifier.compare(entity_type)
    return jsonify(report.to_dict()), 200
