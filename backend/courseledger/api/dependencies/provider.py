# backend/courseledger/api/dependencies/provider.py
"""
Tenant scope for admin requests.

The provider id travels explicitly in the ``X-Provider-Id`` header; there is
no cookie or session fallback.
"""

from typing import Optional

from fastapi import Header

from ...core.exceptions import ValidationException


def get_provider_id(
    x_provider_id: Optional[str] = Header(default=None, alias="X-Provider-Id"),
) -> str:
    provider_id = (x_provider_id or "").strip()
    if not provider_id:
        raise ValidationException(
            "Missing provider id", code="MISSING_PROVIDER", field="X-Provider-Id"
        ).to_http_exception()
    return provider_id
