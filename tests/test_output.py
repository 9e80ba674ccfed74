"""Tests for assume-chain output rendering and console links."""

import json
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import requests
import yaml

from assumechain.core import Credentials, RenderError, UpstreamError
from assumechain.output import (
    FEDERATION_URL,
    credentials_response,
    get_console_url,
    get_signin_token,
    render_credentials,
)

CREDS = Credentials(
    "ASIAEXAMPLE",
    "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY",
    "FwoGZXIvYXdzEBYaDH+token/with=chars",
    datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc),
)


class TestRenderCredentials(unittest.TestCase):
    """Test rendering credentials in each output format."""

    def test_response_fields(self):
        response = credentials_response(CREDS)
        self.assertEqual(
            sorted(response), ["AccessKeyId", "Expiration", "SecretAccessKey", "SessionToken"]
        )
        self.assertEqual(response["Expiration"], "2026-10-18 12:00:00+00:00")

    def test_env(self):
        text = render_credentials(CREDS, "env")
        lines = text.splitlines()
        self.assertEqual(lines[0], "export AWS_ACCESS_KEY_ID=ASIAEXAMPLE")
        self.assertEqual(
            lines[1], "export AWS_SECRET_ACCESS_KEY=wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY"
        )
        self.assertEqual(lines[2], "export AWS_SESSION_TOKEN=FwoGZXIvYXdzEBYaDH+token/with=chars")

    def test_json(self):
        data = json.loads(render_credentials(CREDS, "json"))
        self.assertEqual(data["AccessKeyId"], "ASIAEXAMPLE")
        self.assertEqual(data["SessionToken"], CREDS.session_token)

    def test_yaml(self):
        data = yaml.safe_load(render_credentials(CREDS, "yaml"))
        self.assertEqual(data["SecretAccessKey"], CREDS.secret_access_key)
        self.assertEqual(data["Expiration"], "2026-10-18 12:00:00+00:00")

    def test_unsupported_format(self):
        with self.assertRaises(RenderError) as ctx:
            render_credentials(CREDS, "xml")
        self.assertIn("xml", str(ctx.exception))
        self.assertNotIn(CREDS.secret_access_key, str(ctx.exception))


class TestConsoleUrl(unittest.TestCase):
    """Test the federated console sign-in flow."""

    def test_signin_token(self):
        http = MagicMock()
        http.get.return_value.status_code = 200
        http.get.return_value.json.return_value = {"SigninToken": "signin-123"}

        token = get_signin_token(CREDS, proxy_url="http://proxy:3128", http=http)

        self.assertEqual(token, "signin-123")
        args, kwargs = http.get.call_args
        self.assertEqual(args[0], FEDERATION_URL)
        self.assertEqual(kwargs["params"]["Action"], "getSigninToken")
        session = json.loads(kwargs["params"]["Session"])
        self.assertEqual(session["sessionId"], "ASIAEXAMPLE")
        self.assertEqual(kwargs["proxies"], {"https": "http://proxy:3128"})

    def test_signin_token_non_200(self):
        http = MagicMock()
        http.get.return_value.status_code = 400

        with self.assertRaises(UpstreamError) as ctx:
            get_signin_token(CREDS, http=http)
        self.assertIn("400", str(ctx.exception))

    def test_signin_token_transport_error_hides_session(self):
        http = MagicMock()
        http.get.side_effect = requests.ConnectionError(
            f"failed for {FEDERATION_URL}?Session={CREDS.secret_access_key}"
        )

        with self.assertRaises(UpstreamError) as ctx:
            get_signin_token(CREDS, http=http)
        self.assertNotIn(CREDS.secret_access_key, str(ctx.exception))
        self.assertIsNone(ctx.exception.__cause__)

    def test_signin_token_missing(self):
        http = MagicMock()
        http.get.return_value.status_code = 200
        http.get.return_value.json.return_value = {}

        with self.assertRaises(UpstreamError):
            get_signin_token(CREDS, http=http)

    def test_signin_token_non_object_body(self):
        http = MagicMock()
        http.get.return_value.status_code = 200
        http.get.return_value.json.return_value = ["signin-123"]

        with self.assertRaises(UpstreamError):
            get_signin_token(CREDS, http=http)

    @patch("assumechain.output.requests.Session")
    def test_signin_token_own_session_is_closed(self, mock_session_cls):
        session = mock_session_cls.return_value
        response = session.__enter__.return_value.get.return_value
        response.status_code = 200
        response.json.return_value = {"SigninToken": "signin-123"}

        self.assertEqual(get_signin_token(CREDS), "signin-123")
        session.__exit__.assert_called_once()

    def test_console_url(self):
        url = get_console_url("signin-123")
        parsed = urlparse(url)
        query = parse_qs(parsed.query)

        self.assertEqual(f"{parsed.scheme}://{parsed.netloc}{parsed.path}", FEDERATION_URL)
        self.assertEqual(query["Action"], ["login"])
        self.assertEqual(query["SigninToken"], ["signin-123"])
        self.assertEqual(query["Destination"], ["https://console.aws.amazon.com/"])

    def test_console_url_requires_token(self):
        with self.assertRaises(RenderError):
            get_console_url("")


if __name__ == "__main__":
    unittest.main()
