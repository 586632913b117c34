"""
Per-request collaborators.

Each handler gets its gateway client and notifier from these providers
rather than from module-level instances, so tests swap them through
app.dependency_overrides.
"""
from fastapi import Depends

from app.config import Settings, get_settings
from app.database import SessionLocal
from app.gateways.base import BaseGateway
from app.gateways.razorpay import RazorpayGateway
from app.services.notifier import ReviewNotifier


def get_gateway(settings: Settings = Depends(get_settings)) -> BaseGateway:
    settings.require("razorpay_key_id", "razorpay_key_secret")
    return RazorpayGateway(
        key_id=settings.razorpay_key_id,
        key_secret=settings.razorpay_key_secret,
        api_base=settings.razorpay_api_base,
        timeout=settings.gateway_timeout_seconds,
    )


def get_notifier(settings: Settings = Depends(get_settings)) -> ReviewNotifier:
    return ReviewNotifier(settings)


def get_session_factory():
    """Session factory for work that outlives the request (background tasks)."""
    return SessionLocal
