"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-hs256-signing-0123456789")
# Eager Celery, no broker
os.environ.setdefault("ENVIRONMENT", "test")
# Engine is created at import time; never connect to a real server in tests
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PAYMENT__STRIPE__SECRET_KEY", "sk_test_123")
os.environ.setdefault("PAYMENT__STRIPE__PUBLISHABLE_KEY", "pk_test_123")
os.environ.setdefault("PAYMENT__STRIPE__WEBHOOK_SECRET", "whsec_test")
