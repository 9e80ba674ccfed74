"""
Core role-chaining functions for assume-chain.

Holds the credential value type, the error taxonomy, the single-hop trust
exchange against STS and the sequencer that threads credentials through an
ordered list of roles.
"""

import re
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

DEFAULT_REGION = "us-east-1"

# STS RoleSessionName: 2-64 chars of [\w+=,.@-]
SESSION_NAME_MAX_LENGTH = 64
_SESSION_NAME_INVALID = re.compile(r"[^\w+=,.@-]")


class AssumeChainError(Exception):
    """Base class for every error raised by assume-chain."""


class ConfigurationError(AssumeChainError):
    """A required setting is missing or invalid."""


class InputError(AssumeChainError):
    """The caller gave nothing usable to work with."""


class UpstreamError(AssumeChainError):
    """A remote collaborator (token source, OCM, backplane, STS) failed."""


class ParseError(AssumeChainError):
    """A token, JSON document or role file could not be parsed."""


class RenderError(AssumeChainError):
    """The result could not be rendered in the requested form."""


class TrustExchangeError(UpstreamError):
    """A single role assumption failed."""

    def __init__(self, role_arn, reason):
        self.role_arn = role_arn
        self.reason = reason
        super().__init__(f"failed to assume role {role_arn}: {reason}")


class RoleChainError(UpstreamError):
    """A step of the role chain failed; later steps were not attempted."""

    def __init__(self, step, total, role_arn, cause):
        self.step = step
        self.total = total
        self.role_arn = role_arn
        self.cause = cause
        super().__init__(
            f"step {step}/{total} of role chain failed ({role_arn}): {cause.reason}"
        )


@dataclass(frozen=True)
class Credentials:
    """Temporary AWS credentials. Secrets are kept out of repr()."""

    access_key_id: str
    secret_access_key: str = field(repr=False)
    session_token: str = field(repr=False)
    expiration: datetime = None

    @classmethod
    def from_sts(cls, sts_credentials):
        """
        Build Credentials from the 'Credentials' member of an STS response.

        botocore hands back Expiration as a datetime; anything else is parsed
        as an ISO-8601 string.
        """
        expiration = sts_credentials.get("Expiration")
        if isinstance(expiration, str):
            expiration = datetime.fromisoformat(expiration.replace("Z", "+00:00"))
        if isinstance(expiration, datetime) and expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=timezone.utc)

        return cls(
            access_key_id=sts_credentials["AccessKeyId"],
            secret_access_key=sts_credentials["SecretAccessKey"],
            session_token=sts_credentials["SessionToken"],
            expiration=expiration,
        )


def session_name_from_email(email):
    """
    Turn a requester email into a valid STS RoleSessionName.

    Args:
        email: Email claim taken from the bootstrap token

    Returns:
        str: Session name, at most 64 characters

    Raises:
        InputError: If nothing usable remains
    """
    name = _SESSION_NAME_INVALID.sub("-", (email or "").strip())[:SESSION_NAME_MAX_LENGTH]
    if len(name) < 2:
        raise InputError(f"cannot derive a role session name from '{email}'")
    return name


def sts_client_with_proxy(proxy_url=None, credentials=None, region=DEFAULT_REGION):
    """
    Create an STS client, optionally routed through a forward proxy.

    Args:
        proxy_url: https proxy URL, or None for a direct connection
        credentials: Credentials to sign with; None uses the default chain
            (unsigned calls such as AssumeRoleWithWebIdentity need none)
        region: Region for the STS endpoint

    Returns:
        botocore STS client
    """
    boto_cfg = Config(
        region_name=region,
        proxies={"https": proxy_url} if proxy_url else None,
    )

    if credentials is None:
        session = boto3.Session(region_name=region)
    else:
        session = boto3.Session(
            aws_access_key_id=credentials.access_key_id,
            aws_secret_access_key=credentials.secret_access_key,
            aws_session_token=credentials.session_token,
            region_name=region,
        )
    return session.client("sts", config=boto_cfg)


def _describe_failure(error):
    """Summarize a botocore failure without echoing request parameters."""
    if isinstance(error, ClientError):
        error_code = error.response.get("Error", {}).get("Code", "Unknown")
        error_msg = error.response.get("Error", {}).get("Message", "")
        return f"{error_code}: {error_msg}" if error_msg else error_code
    return f"{type(error).__name__}: {error}"


def assume_role_with_jwt(token, role_arn, session_name, client):
    """
    Exchange a bootstrap identity token for seed credentials.

    Args:
        token: OIDC access token
        role_arn: Initial trust-anchor role
        session_name: RoleSessionName recorded in CloudTrail
        client: STS client

    Returns:
        Credentials

    Raises:
        TrustExchangeError: If STS rejects the token or cannot be reached
    """
    try:
        response = client.assume_role_with_web_identity(
            RoleArn=role_arn,
            RoleSessionName=session_name,
            WebIdentityToken=token,
        )
    except (ClientError, BotoCoreError) as e:
        raise TrustExchangeError(role_arn, _describe_failure(e)) from e

    return Credentials.from_sts(response["Credentials"])


def assume_role(client, role_arn, session_name):
    """
    Perform one trust exchange: assume role_arn with the client's credentials.

    No retries happen here.

    Args:
        client: STS client signed with the current credentials
        role_arn: Role to assume
        session_name: RoleSessionName recorded in CloudTrail

    Returns:
        Credentials

    Raises:
        TrustExchangeError: On transport failure or when STS denies the call
    """
    try:
        response = client.assume_role(RoleArn=role_arn, RoleSessionName=session_name)
    except (ClientError, BotoCoreError) as e:
        raise TrustExchangeError(role_arn, _describe_failure(e)) from e

    return Credentials.from_sts(response["Credentials"])


def assume_role_sequence(
    session_name,
    seed_credentials,
    role_sequence,
    proxy_url=None,
    client_factory=sts_client_with_proxy,
    verbose=False,
):
    """
    Assume each role in order, feeding every hop the previous hop's credentials.

    Args:
        session_name: RoleSessionName used on every hop
        seed_credentials: Credentials the first hop is signed with
        role_sequence: Ordered role ARNs; may be empty
        proxy_url: Forward proxy shared by every hop
        client_factory: Callable (proxy_url, credentials) -> STS client,
            invoked once per hop
        verbose: Print one progress line per hop to stderr

    Returns:
        Credentials: Output of the last hop, or seed_credentials if the
        sequence is empty

    Raises:
        InputError: If session_name is empty
        RoleChainError: At the first failing hop
    """
    if not session_name:
        raise InputError("role session name must not be empty")

    roles = list(role_sequence)
    current = seed_credentials

    for step, role_arn in enumerate(roles, start=1):
        if verbose:
            print(f"  [{step}/{len(roles)}] Assuming {role_arn}", file=sys.stderr)
        try:
            client = client_factory(proxy_url, current)
        except BotoCoreError as e:
            cause = TrustExchangeError(
                role_arn, f"failed to create sts client: {_describe_failure(e)}"
            )
            raise RoleChainError(step, len(roles), role_arn, cause) from e
        try:
            current = assume_role(client, role_arn, session_name)
        except TrustExchangeError as e:
            raise RoleChainError(step, len(roles), role_arn, e) from e

    return current
