"""Task modules grouped by domain.

Import side effects register Celery tasks once this package is imported.
"""
from . import refunds, webhooks  # noqa: F401 to register tasks

__all__ = ["refunds", "webhooks"]
