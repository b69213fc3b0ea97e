from .api import ApiError, StorefrontClient
from .session_store import Session, SessionStore, fetcher_for
from .wizard import (
    AddressSnapshot,
    AuthenticationRequired,
    MemorySessionStorage,
    OrderWizard,
    PrintConfiguration,
    WizardError,
    WizardFile,
    WizardStep,
)

__all__ = [
    "AddressSnapshot",
    "ApiError",
    "StorefrontClient",
    "Session",
    "SessionStore",
    "fetcher_for",
    "AuthenticationRequired",
    "MemorySessionStorage",
    "OrderWizard",
    "PrintConfiguration",
    "WizardError",
    "WizardFile",
    "WizardStep",
]
