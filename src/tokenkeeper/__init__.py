"""tokenkeeper — OAuth 2.0 / OpenID Connect client token lifecycle."""

from tokenkeeper.authorize import AuthState, build_authorization_url, extract_code
from tokenkeeper.config import ClientConfig, Settings, get_settings
from tokenkeeper.errors import (
    AuthorizationAborted,
    AuthorizationError,
    AuthorizationInProgress,
    ConfigError,
    CryptoUnavailable,
    DiscoveryFailed,
    NetworkError,
    NoAccessToken,
    NoRefreshToken,
    NoValidToken,
    PopupBlocked,
    TokenExchangeFailed,
    TokenKeeperError,
    UserCancelled,
    UserInfoFailed,
)
from tokenkeeper.manager import TokenLifecycleManager
from tokenkeeper.pkce import PKCEPair
from tokenkeeper.storage import FileStorage, MemoryStorage, TokenStorage
from tokenkeeper.tokens import TokenState

__all__ = [
    "AuthState",
    "AuthorizationAborted",
    "AuthorizationError",
    "AuthorizationInProgress",
    "ClientConfig",
    "ConfigError",
    "CryptoUnavailable",
    "DiscoveryFailed",
    "FileStorage",
    "MemoryStorage",
    "NetworkError",
    "NoAccessToken",
    "NoRefreshToken",
    "NoValidToken",
    "PKCEPair",
    "PopupBlocked",
    "Settings",
    "TokenExchangeFailed",
    "TokenKeeperError",
    "TokenLifecycleManager",
    "TokenState",
    "TokenStorage",
    "UserCancelled",
    "UserInfoFailed",
    "build_authorization_url",
    "extract_code",
    "get_settings",
]
