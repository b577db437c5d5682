# storage/__init__.py
# ============================================================================
# LN IMAGEGEN - STORAGE MODULE
# ============================================================================
# Invoice records, prompt sessions, audit trail and user lookup
# ============================================================================

from ln_imagegen.storage.invoice_repository import (
    IInvoiceRepository,
    InMemoryInvoiceRepository,
    RedisInvoiceRepository,
)
from ln_imagegen.storage.session_store import (
    ISessionStore,
    InMemorySessionStore,
    RedisSessionStore,
)
from ln_imagegen.storage.artifact_cache import ArtifactCache
from ln_imagegen.storage.audit_log import IAuditLog, InMemoryAuditLog
from ln_imagegen.storage.users import IUserDirectory, InMemoryUserDirectory, RedisUserDirectory

__all__ = [
    "IInvoiceRepository",
    "InMemoryInvoiceRepository",
    "RedisInvoiceRepository",
    "ISessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
    "ArtifactCache",
    "IAuditLog",
    "InMemoryAuditLog",
    "IUserDirectory",
    "InMemoryUserDirectory",
    "RedisUserDirectory",
]
