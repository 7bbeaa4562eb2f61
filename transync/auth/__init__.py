"""Authentication — device-code login and token storage."""

from transync.auth.credentials import CredentialStore
from transync.auth.device_flow import AuthFlowController, AuthResult, AuthState, Credentials

__all__ = [
    "AuthFlowController",
    "AuthResult",
    "AuthState",
    "CredentialStore",
    "Credentials",
]
