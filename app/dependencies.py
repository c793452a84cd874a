"""
QLedger - FastAPI Dependencies

Shared dependencies for the request context.

The gateway in front of this service authenticates the caller and forwards
the resolved identity as headers:
- X-Tenant-ID: tenant the request acts on (required)
- X-User-ID: acting user (required)
- X-Branch-ID: branch for new journals (optional)

Values are trusted as already authorized; they are only checked for shape.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Header

from app.utils.error_handling import AuthenticationException


@dataclass(frozen=True)
class RequestContext:
    """Identity of the caller for one request."""
    tenant_id: uuid.UUID
    user_id: uuid.UUID
    branch_id: Optional[uuid.UUID] = None


def _parse_uuid(header: str, value: Optional[str], required: bool = True) -> Optional[uuid.UUID]:
    if not value:
        if required:
            raise AuthenticationException(
                message=f"Missing {header} header",
                details={"header": header},
            )
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        raise AuthenticationException(
            message=f"Invalid {header} header",
            details={"header": header},
        )


async def get_request_context(
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-ID"),
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
    x_branch_id: Optional[str] = Header(None, alias="X-Branch-ID"),
) -> RequestContext:
    """
    Build the request context from gateway headers.

    Raises:
        AuthenticationException: 401 if a required header is missing or not a UUID
    """
    return RequestContext(
        tenant_id=_parse_uuid("X-Tenant-ID", x_tenant_id),
        user_id=_parse_uuid("X-User-ID", x_user_id),
        branch_id=_parse_uuid("X-Branch-ID", x_branch_id, required=False),
    )

