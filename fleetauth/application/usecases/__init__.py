"""
Use Cases Layer (Engine Operations)

Each transport endpoint maps onto exactly one use case here:

    usecases/
    ├── auth.py        # login, refresh, logout, whoami
    ├── policy.py      # signed policy fetch + issue history
    └── supervisor.py  # supervisor override grant / revoke
"""

from .auth import (
    LoginInput,
    LoginResult,
    LoginUseCase,
    LogoutUseCase,
    RefreshUseCase,
    WhoAmIResult,
    WhoAmIUseCase,
)
from .policy import FetchPolicyResult, FetchPolicyUseCase
from .supervisor import GrantOverrideUseCase, RevokeOverrideUseCase

__all__ = [
    "FetchPolicyResult",
    "FetchPolicyUseCase",
    "GrantOverrideUseCase",
    "LoginInput",
    "LoginResult",
    "LoginUseCase",
    "LogoutUseCase",
    "RefreshUseCase",
    "RevokeOverrideUseCase",
    "WhoAmIResult",
    "WhoAmIUseCase",
]
