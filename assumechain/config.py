"""
Backplane configuration loading for assume-chain.
"""

import json
import os
from dataclasses import dataclass

from .core import DEFAULT_REGION, ConfigurationError

DEFAULT_OCM_URL = "https://api.openshift.com"


@dataclass
class BackplaneConfiguration:
    url: str = None
    proxy_url: str = None
    assume_initial_arn: str = None
    ocm_url: str = DEFAULT_OCM_URL
    region: str = DEFAULT_REGION


def get_backplane_config_path(environ=None):
    """Get the backplane config file path ($BACKPLANE_CONFIG wins)."""
    environ = os.environ if environ is None else environ
    path = environ.get("BACKPLANE_CONFIG")
    if path:
        return os.path.expanduser(path)
    return os.path.expanduser("~/.config/backplane/config.json")


def _first_proxy(value):
    # proxy-url may be a single URL or a list of candidates
    if isinstance(value, list):
        for candidate in value:
            if candidate:
                return candidate
        return None
    return value or None


def load_backplane_config(path=None, environ=None):
    """
    Read the backplane JSON config and apply environment overrides.

    A missing file yields defaults; only the environment contributes then.

    Args:
        path: Config file path (defaults to get_backplane_config_path())
        environ: Mapping used for overrides (defaults to os.environ)

    Returns:
        BackplaneConfiguration

    Raises:
        ConfigurationError: If the file exists but cannot be read or parsed
    """
    environ = os.environ if environ is None else environ
    path = path or get_backplane_config_path(environ)

    data = {}
    if os.path.exists(path):
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"error reading backplane config {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"backplane config {path} must contain a JSON object")

    config = BackplaneConfiguration(
        url=data.get("url") or None,
        proxy_url=_first_proxy(data.get("proxy-url")),
        assume_initial_arn=data.get("assume-initial-arn") or None,
        ocm_url=data.get("ocm-url") or DEFAULT_OCM_URL,
        region=data.get("region") or DEFAULT_REGION,
    )

    if environ.get("BACKPLANE_URL"):
        config.url = environ["BACKPLANE_URL"]
    proxy = environ.get("BACKPLANE_PROXY_URL") or environ.get("HTTPS_PROXY")
    if proxy:
        config.proxy_url = proxy
    if environ.get("BACKPLANE_ASSUME_INITIAL_ARN"):
        config.assume_initial_arn = environ["BACKPLANE_ASSUME_INITIAL_ARN"]
    if environ.get("OCM_URL"):
        config.ocm_url = environ["OCM_URL"]
    if environ.get("AWS_REGION"):
        config.region = environ["AWS_REGION"]

    return config


def validate_for_assume(config, remote):
    """
    Check the settings a role chain needs before anything touches the network.

    Args:
        config: BackplaneConfiguration
        remote: True when the role sequence comes from the backplane API

    Raises:
        ConfigurationError: If a required property is missing
    """
    if not config.assume_initial_arn:
        raise ConfigurationError(
            "backplane config is missing required `assume-initial-arn` property"
        )
    if remote and not config.url:
        raise ConfigurationError("backplane config is missing required `url` property")
