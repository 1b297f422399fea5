"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends

from invoice_delay.config import Settings, get_settings
from invoice_delay.domain.ports import AuditSink
from invoice_delay.infrastructure.clients.stripe import StripeClient
from invoice_delay.processing.jobs import build_audit_sink, build_session, build_stripe_client
from invoice_delay.processing.session import ProcessingSession


def get_app_settings() -> Settings:
    """Provide validated settings (ConfigurationError surfaces as a 500)"""
    return get_settings()


def get_audit_sink(settings: Settings = Depends(get_app_settings)) -> AuditSink:
    """Provide the configured audit sink"""
    return build_audit_sink(settings)


def get_stripe_client(settings: Settings = Depends(get_app_settings)) -> StripeClient:
    """Provide Stripe API client instance"""
    return build_stripe_client(settings)


def get_processing_session(
    settings: Settings = Depends(get_app_settings),
    stripe_client: StripeClient = Depends(get_stripe_client),
    audit_sink: AuditSink = Depends(get_audit_sink),
) -> ProcessingSession:
    """Provide a fresh session per request; runs share no in-memory state"""
    return build_session(settings, stripe_client=stripe_client, audit_sink=audit_sink)
