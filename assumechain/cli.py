"""
Command-line interface for assume-chain.
"""

import argparse
import functools
import sys

from .config import load_backplane_config, validate_for_assume
from .core import (
    AssumeChainError,
    InputError,
    RenderError,
    assume_role_sequence,
    session_name_from_email,
    sts_client_with_proxy,
)
from .output import OUTPUT_FORMATS, get_console_url, get_signin_token, render_credentials
from .source import get_ocm_access_token, get_string_field_from_jwt, resolve_chain_source


def build_parser():
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="assume-chain",
        description="Perform the assume-role chaining needed for temporary access to a "
        "cluster's AWS account",
        epilog="Examples:\n"
        "  assume-chain e3b2fdc5-d9a7-435e-8870-312689cfb29c -o json    # Credentials as JSON\n"
        "  assume-chain e3b2fdc5-d9a7-435e-8870-312689cfb29c --console  # Console sign-in URL\n"
        "  assume-chain --debug-file test_arns                          # Roles from a local file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "cluster",
        nargs="?",
        default=None,
        help="Cluster ID, external ID, name or partial name. The role chain for the "
        "cluster's account is fetched from the backplane API",
    )
    parser.add_argument(
        "-o",
        "--output",
        default="env",
        help="Format of the credentials output. Valid values are env, json and yaml (default: env)",
    )
    parser.add_argument(
        "--debug-file",
        default=None,
        help="Plain text file listing the role ARNs to assume in order, one per line, "
        "not including the initial role ARN. Bypasses the backplane API lookup",
    )
    parser.add_argument(
        "--console",
        action="store_true",
        help="Print a console URL for the target account instead of the STS credentials",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print progress of each stage to stderr",
    )
    return parser


def run_assume(
    args,
    config=None,
    token=None,
    client_factory=None,
    http=None,
):
    """
    Run the full chain for parsed arguments and return the text to print.

    Args:
        args: argparse.Namespace from build_parser()
        config: BackplaneConfiguration (loaded from disk when None)
        token: OCM access token (retrieved when None)
        client_factory: Callable (proxy_url, credentials) -> STS client;
            defaults to sts_client_with_proxy in the configured region
        http: requests.Session-like object for every HTTP call

    Returns:
        str: Console URL message or rendered credentials

    Raises:
        AssumeChainError: With the failing stage in the message
    """
    if not args.cluster and not args.debug_file:
        raise InputError(
            "must provide either cluster ID as an argument, or --debug-file as a flag"
        )

    if not args.console and args.output not in OUTPUT_FORMATS:
        raise RenderError(
            f"unsupported output format '{args.output}' (valid: {', '.join(OUTPUT_FORMATS)})"
        )

    if config is None:
        config = load_backplane_config()
    validate_for_assume(config, remote=not args.debug_file)

    if client_factory is None:
        client_factory = functools.partial(sts_client_with_proxy, region=config.region)

    if token is None:
        token = get_ocm_access_token()

    email = get_string_field_from_jwt(token, "email")
    session_name = session_name_from_email(email)

    seed_credentials, role_sequence = resolve_chain_source(
        config,
        token,
        session_name,
        cluster_key=args.cluster,
        debug_file=args.debug_file,
        client_factory=client_factory,
        http=http,
        verbose=args.verbose,
    )

    target_credentials = assume_role_sequence(
        session_name,
        seed_credentials,
        role_sequence,
        proxy_url=config.proxy_url,
        client_factory=client_factory,
        verbose=args.verbose,
    )

    if args.console:
        signin_token = get_signin_token(target_credentials, proxy_url=config.proxy_url, http=http)
        return f"The AWS Console URL is:\n{get_console_url(signin_token)}"

    return render_credentials(target_credentials, args.output)


def main():
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    try:
        result = run_assume(args)
    except AssumeChainError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(130)

    print(result)


if __name__ == "__main__":
    main()
