"""Shared FastAPI dependencies."""

from hookrelay.config import Settings, get_settings
from hookrelay.services.queue import SubmitFn, submit_via_celery


def get_app_settings() -> Settings:
    return get_settings()


def get_submit() -> SubmitFn:
    return submit_via_celery
