"""
assume-chain: chained AWS role assumption for backplane-managed clusters.

A Python CLI utility that exchanges an OCM identity token for seed AWS
credentials, fetches the ordered list of jump roles for a cluster's account
from the backplane API, and assumes each role in turn using the previous
role's credentials.

Key features:
- Seed credentials via STS AssumeRoleWithWebIdentity on a configured role
- Role chain from the backplane API or a local debug file
- Every STS call optionally routed through a forward proxy
- Output as shell exports, JSON, YAML or a federated console URL
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .config import BackplaneConfiguration, load_backplane_config
from .core import (
    AssumeChainError,
    ConfigurationError,
    Credentials,
    InputError,
    ParseError,
    RenderError,
    RoleChainError,
    TrustExchangeError,
    UpstreamError,
    assume_role,
    assume_role_sequence,
    assume_role_with_jwt,
    sts_client_with_proxy,
)
from .output import get_console_url, get_signin_token, render_credentials
from .source import (
    fetch_assume_role_sequence,
    parse_assume_role_sequence,
    read_role_sequence_file,
    resolve_chain_source,
)

__all__ = [
    # Chain engine
    "Credentials",
    "assume_role",
    "assume_role_sequence",
    "assume_role_with_jwt",
    "sts_client_with_proxy",
    # Role sequence sources
    "resolve_chain_source",
    "fetch_assume_role_sequence",
    "parse_assume_role_sequence",
    "read_role_sequence_file",
    # Output
    "render_credentials",
    "get_signin_token",
    "get_console_url",
    # Configuration
    "BackplaneConfiguration",
    "load_backplane_config",
    # Errors
    "AssumeChainError",
    "ConfigurationError",
    "InputError",
    "UpstreamError",
    "TrustExchangeError",
    "RoleChainError",
    "ParseError",
    "RenderError",
]
