"""
Present the final credentials: rendered for a shell or tool, or as a
federated AWS console sign-in link.
"""

import json
import shlex
from urllib.parse import urlencode

import requests
import yaml

from .core import RenderError, UpstreamError

OUTPUT_FORMATS = ("env", "json", "yaml")

FEDERATION_URL = "https://signin.aws.amazon.com/federation"
CONSOLE_DESTINATION = "https://console.aws.amazon.com/"
REQUEST_TIMEOUT = 30


def credentials_response(credentials):
    """Build the output document for a set of credentials."""
    expiration = credentials.expiration
    return {
        "AccessKeyId": credentials.access_key_id,
        "SecretAccessKey": credentials.secret_access_key,
        "SessionToken": credentials.session_token,
        "Expiration": str(expiration) if expiration is not None else "",
    }


def render_credentials(credentials, output_format="env"):
    """
    Render credentials in one of OUTPUT_FORMATS.

    Args:
        credentials: Credentials to render
        output_format: 'env', 'json' or 'yaml'

    Returns:
        str: Rendered text without a trailing newline

    Raises:
        RenderError: If the format is not supported
    """
    response = credentials_response(credentials)

    if output_format == "env":
        return "\n".join(
            [
                f"export AWS_ACCESS_KEY_ID={shlex.quote(response['AccessKeyId'])}",
                f"export AWS_SECRET_ACCESS_KEY={shlex.quote(response['SecretAccessKey'])}",
                f"export AWS_SESSION_TOKEN={shlex.quote(response['SessionToken'])}",
            ]
        )
    if output_format == "json":
        return json.dumps(response, indent=2)
    if output_format == "yaml":
        return yaml.safe_dump(response, default_flow_style=False, sort_keys=False).rstrip("\n")

    raise RenderError(
        f"unsupported output format '{output_format}' (valid: {', '.join(OUTPUT_FORMATS)})"
    )


def get_signin_token(credentials, proxy_url=None, http=None):
    """
    Trade credentials for a short-lived console sign-in token.

    The request URL carries the session, so errors report only the status
    or the exception type.

    Returns:
        str: SigninToken

    Raises:
        UpstreamError: If the federation endpoint fails or returns no token
    """
    if http is None:
        with requests.Session() as http:
            return get_signin_token(credentials, proxy_url=proxy_url, http=http)

    session = json.dumps(
        {
            "sessionId": credentials.access_key_id,
            "sessionKey": credentials.secret_access_key,
            "sessionToken": credentials.session_token,
        }
    )

    try:
        response = http.get(
            FEDERATION_URL,
            params={"Action": "getSigninToken", "Session": session},
            proxies={"https": proxy_url} if proxy_url else None,
            timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException as e:
        raise UpstreamError(f"failed to get signin token from AWS: {type(e).__name__}") from None

    if response.status_code != 200:
        raise UpstreamError(f"failed to get signin token from AWS: {response.status_code}")

    try:
        document = response.json()
    except ValueError:
        document = None
    signin_token = document.get("SigninToken") if isinstance(document, dict) else None
    if not signin_token:
        raise UpstreamError("failed to get signin token from AWS: no SigninToken in response")
    return signin_token


def get_console_url(signin_token, destination=CONSOLE_DESTINATION):
    """
    Build the federated console login URL for a sign-in token.

    Raises:
        RenderError: If no token is given
    """
    if not signin_token:
        raise RenderError("failed to generate console url: empty signin token")
    query = urlencode(
        {"Action": "login", "Destination": destination, "SigninToken": signin_token}
    )
    return f"{FEDERATION_URL}?{query}"
