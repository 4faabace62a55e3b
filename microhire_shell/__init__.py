"""MicroHire 客户端会话壳层：认证状态机、二次验证与实时通道生命周期。"""

from .auth_controller import AuthController
from .authorization import AuthorizationPolicy
from .channel_manager import ChannelManager
from .client_config import ClientConfig, load_config
from .credential_store import CredentialStore, StoredCredentials
from .domain import (
    AuthOutcome,
    AuthSource,
    AuthStatus,
    ChannelState,
    FailureReason,
    OutcomeKind,
    Role,
    Session,
    UserRecord,
)
from .shell_entry import ShellApp

__all__ = [
    "AuthController",
    "AuthorizationPolicy",
    "ChannelManager",
    "ClientConfig",
    "load_config",
    "CredentialStore",
    "StoredCredentials",
    "AuthOutcome",
    "AuthSource",
    "AuthStatus",
    "ChannelState",
    "FailureReason",
    "OutcomeKind",
    "Role",
    "Session",
    "UserRecord",
    "ShellApp",
]
