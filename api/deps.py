"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends

from api.config import Settings, get_settings
from api.services.audit_service import AuditService, get_audit_service

__all__ = ["SettingsDep", "AuditServiceDep"]


SettingsDep = Annotated[Settings, Depends(get_settings)]

AuditServiceDep = Annotated[AuditService, Depends(get_audit_service)]
