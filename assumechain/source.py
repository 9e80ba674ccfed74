"""
Resolve where a role chain starts and which roles it walks through.

The seed credentials always come from exchanging the OCM token against the
configured initial role. The role list comes either from the backplane API
(remote mode) or from a local file (debug mode).
"""

import json
import os
import subprocess
import sys

import jwt
import requests
from botocore.exceptions import BotoCoreError

from .config import validate_for_assume
from .core import (
    InputError,
    ParseError,
    TrustExchangeError,
    UpstreamError,
    assume_role_with_jwt,
    sts_client_with_proxy,
)

ASSUME_ROLE_SEQUENCE_PATH = "/backplane/cloud/assume-role-sequence/{cluster_id}"
CLUSTERS_PATH = "/api/clusters_mgmt/v1/clusters"
REQUEST_TIMEOUT = 30


def _proxies(proxy_url):
    return {"https": proxy_url} if proxy_url else None


def get_ocm_access_token(environ=None, runner=subprocess.run):
    """
    Get the OCM access token used to bootstrap the chain.

    $OCM_TOKEN is used when set; otherwise `ocm token` is run.

    Raises:
        UpstreamError: If no token could be obtained
    """
    environ = os.environ if environ is None else environ
    token = environ.get("OCM_TOKEN", "").strip()
    if token:
        return token

    try:
        result = runner(["ocm", "token"], capture_output=True, text=True, check=True)
    except FileNotFoundError as e:
        raise UpstreamError("failed to retrieve OCM token: `ocm` CLI not found") from e
    except OSError as e:
        raise UpstreamError(f"failed to retrieve OCM token: cannot run `ocm`: {e.strerror or e}") from e
    except subprocess.CalledProcessError as e:
        detail = (e.stderr or "").strip() or f"exit status {e.returncode}"
        raise UpstreamError(f"failed to retrieve OCM token: {detail}") from e

    token = result.stdout.strip()
    if not token:
        raise UpstreamError("failed to retrieve OCM token: `ocm token` printed nothing")
    return token


def get_string_field_from_jwt(token, field):
    """
    Read a string claim from a JWT without verifying its signature.

    The token is only inspected locally; STS verifies it during the exchange.

    Raises:
        ParseError: If the token is malformed or the claim is missing
    """
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        raise ParseError(f"unable to decode token: {e}") from e

    value = claims.get(field)
    if not isinstance(value, str) or not value:
        raise ParseError(f"token has no string claim '{field}'")
    return value


def _cluster_items(response):
    """Validate an OCM cluster list response and return its items."""
    try:
        document = response.json()
    except ValueError as e:
        raise ParseError("failed to get target cluster: invalid JSON from OCM") from e

    if not isinstance(document, dict):
        raise ParseError("failed to get target cluster: unexpected response shape from OCM")
    items = document.get("items")
    if items is None:
        items = []
    if not isinstance(items, list):
        raise ParseError("failed to get target cluster: unexpected response shape from OCM")
    for item in items:
        if not isinstance(item, dict) or not isinstance(item.get("id"), str):
            raise ParseError("failed to get target cluster: OCM returned a cluster without an id")
    return items


def resolve_cluster_id(ocm_url, token, cluster_key, proxy_url=None, http=None):
    """
    Resolve a cluster ID, external ID, name or partial name to a cluster ID.

    An exact match on id, external_id or name is tried first, then a
    substring match on name. Exactly one cluster must match.

    Returns:
        str: Internal cluster ID

    Raises:
        UpstreamError: On lookup failure, no match or an ambiguous match
        ParseError: If OCM returns a malformed cluster list
    """
    if http is None:
        with requests.Session() as http:
            return resolve_cluster_id(ocm_url, token, cluster_key, proxy_url=proxy_url, http=http)

    key = cluster_key.replace("'", "''")
    searches = [
        f"id = '{key}' or external_id = '{key}' or name = '{key}'",
        f"name like '%{key}%'",
    ]

    for search in searches:
        try:
            response = http.get(
                ocm_url.rstrip("/") + CLUSTERS_PATH,
                params={"search": search, "size": 10},
                headers={"Authorization": f"Bearer {token}"},
                proxies=_proxies(proxy_url),
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"failed to get target cluster: {type(e).__name__}") from e

        if response.status_code != 200:
            raise UpstreamError(f"failed to get target cluster: {response.status_code} {response.reason}")

        items = _cluster_items(response)
        if len(items) == 1:
            return items[0]["id"]
        if len(items) > 1:
            names = ", ".join(f"{item.get('name')} ({item.get('id')})" for item in items)
            raise UpstreamError(
                f"failed to get target cluster: '{cluster_key}' matches several clusters: {names}"
            )

    raise UpstreamError(f"failed to get target cluster: no cluster matches '{cluster_key}'")


def parse_assume_role_sequence(body):
    """
    Extract the ordered role ARNs from an assume-role-sequence response.

    Args:
        body: Raw response body ({"assumptionSequence": [{"name", "arn"}, ...]})

    Returns:
        list: Role ARNs in response order

    Raises:
        ParseError: If the body is not the expected JSON shape
    """
    try:
        document = json.loads(body)
    except ValueError as e:
        raise ParseError(f"failed to unmarshal response: {e}") from e

    if not isinstance(document, dict):
        raise ParseError("failed to unmarshal response: expected a JSON object")

    sequence = document.get("assumptionSequence")
    if sequence is None:
        sequence = []
    if not isinstance(sequence, list):
        raise ParseError("failed to unmarshal response: assumptionSequence is not a list")

    arns = []
    for index, entry in enumerate(sequence):
        if not isinstance(entry, dict) or not isinstance(entry.get("arn"), str):
            raise ParseError(f"failed to unmarshal response: entry {index} has no arn")
        arns.append(entry["arn"])
    return arns


def fetch_assume_role_sequence(backplane_url, cluster_id, token, proxy_url=None, http=None):
    """
    Ask the backplane API which roles lead into the cluster's account.

    Returns:
        list: Role ARNs to assume in order

    Raises:
        UpstreamError: On transport failure or a non-200 response
        ParseError: If the response body is malformed
    """
    if http is None:
        with requests.Session() as http:
            return fetch_assume_role_sequence(
                backplane_url, cluster_id, token, proxy_url=proxy_url, http=http
            )

    url = backplane_url.rstrip("/") + ASSUME_ROLE_SEQUENCE_PATH.format(cluster_id=cluster_id)

    try:
        response = http.get(
            url,
            headers={"Authorization": f"Bearer {token}"},
            proxies=_proxies(proxy_url),
            timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException as e:
        raise UpstreamError(f"failed to fetch arn sequence: {type(e).__name__}") from e

    if response.status_code != 200:
        raise UpstreamError(f"failed to fetch arn sequence: {response.status_code} {response.reason}")

    return parse_assume_role_sequence(response.text)


def read_role_sequence_file(path):
    """
    Read role ARNs from a plain-text file, one per line.

    Surrounding whitespace is stripped and blank lines are skipped, so a
    trailing newline never yields an empty ARN.

    Raises:
        InputError: If the file cannot be read
    """
    try:
        with open(path, "r") as f:
            lines = f.read().splitlines()
    except OSError as e:
        raise InputError(f"failed to read file {path}: {e.strerror or e}") from e

    return [line.strip() for line in lines if line.strip()]


def resolve_chain_source(
    config,
    token,
    session_name,
    cluster_key=None,
    debug_file=None,
    client_factory=sts_client_with_proxy,
    http=None,
    verbose=False,
):
    """
    Produce the seed credentials and the role sequence for one chain.

    Args:
        config: BackplaneConfiguration
        token: OCM access token
        session_name: RoleSessionName for the seed exchange
        cluster_key: Cluster ID, external ID or (partial) name; remote mode
        debug_file: File of role ARNs; static mode, wins over cluster_key
        client_factory: Callable (proxy_url, credentials) -> STS client
        http: requests.Session-like object for OCM and backplane calls
        verbose: Print stage progress to stderr

    Returns:
        tuple: (Credentials, list of role ARNs)

    Raises:
        InputError: If neither cluster_key nor debug_file is given
        ConfigurationError: If required settings are missing
    """
    if not cluster_key and not debug_file:
        raise InputError("must provide either cluster ID as an argument, or --debug-file as a flag")

    remote = not debug_file
    validate_for_assume(config, remote)

    # The local file is read up front so a bad path fails before any network call
    static_sequence = None if remote else read_role_sequence_file(debug_file)

    if verbose:
        print(f"Assuming initial role {config.assume_initial_arn}", file=sys.stderr)
    try:
        initial_client = client_factory(config.proxy_url, None)
    except BotoCoreError as e:
        raise UpstreamError(f"failed to create sts client: {type(e).__name__}: {e}") from e
    try:
        seed_credentials = assume_role_with_jwt(
            token, config.assume_initial_arn, session_name, initial_client
        )
    except TrustExchangeError as e:
        raise UpstreamError(f"failed to assume role using JWT: {e}") from e

    if not remote:
        if verbose:
            print(f"Read {len(static_sequence)} role(s) from {debug_file}", file=sys.stderr)
        return seed_credentials, static_sequence

    cluster_id = resolve_cluster_id(
        config.ocm_url, token, cluster_key, proxy_url=config.proxy_url, http=http
    )
    role_sequence = fetch_assume_role_sequence(
        config.url, cluster_id, token, proxy_url=config.proxy_url, http=http
    )
    if verbose:
        print(f"Cluster {cluster_id}: {len(role_sequence)} role(s) to assume", file=sys.stderr)
    return seed_credentials, role_sequence
