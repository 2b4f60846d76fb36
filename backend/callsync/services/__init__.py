"""Webhook pipeline services."""

from callsync.services.audit_logger import AuditLogger
from callsync.services.call_reconciler import CallReconciler, ReconcileResult
from callsync.services.normalizer import NormalizedEvent, normalize_event
from callsync.services.project_resolver import ProjectResolver
from callsync.services.webhook_handler import WebhookHandler, WebhookOutcome, WebhookStatus
from callsync.services.webhook_verifier import WebhookVerifier

__all__ = [
    "AuditLogger",
    "CallReconciler",
    "NormalizedEvent",
    "ProjectResolver",
    "ReconcileResult",
    "WebhookHandler",
    "WebhookOutcome",
    "WebhookStatus",
    "WebhookVerifier",
    "normalize_event",
]
