"""
Business codes carried in the response envelope's ``code`` field.

General codes live here; codes that only the payment flows produce live in
``shared.codes.payment_codes``. core.exceptions maps both onto HTTP statuses.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    SUCCESS = 0

    # Request errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_VALIDATION_ERROR = 10003

    # Business rule errors (2xxxx)
    BUSINESS_ERROR = 20000
    NOT_FOUND = 20006
    CONFLICT = 20007  # lost an optimistic concurrency race

    # Caller identity (3xxxx)
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # Infrastructure (4xxxx)
    SYSTEM_ERROR = 40000
    SERVICE_UNAVAILABLE = 40003


__all__ = ["BusinessCode"]
