"""Tests for assume-chain configuration loading."""

import json
import os
import shutil
import tempfile
import unittest

from assumechain.config import (
    DEFAULT_OCM_URL,
    BackplaneConfiguration,
    get_backplane_config_path,
    load_backplane_config,
    validate_for_assume,
)
from assumechain.core import ConfigurationError


class TestBackplaneConfig(unittest.TestCase):
    """Test reading the backplane config file."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.config_file = os.path.join(self.temp_dir, "config.json")

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def write(self, data):
        with open(self.config_file, "w") as f:
            f.write(data if isinstance(data, str) else json.dumps(data))

    def test_config_path_default(self):
        path = get_backplane_config_path({})
        self.assertTrue(path.endswith(".config/backplane/config.json"))
        self.assertTrue(path.startswith(os.path.expanduser("~")))

    def test_config_path_from_environment(self):
        self.assertEqual(get_backplane_config_path({"BACKPLANE_CONFIG": "/etc/bp.json"}), "/etc/bp.json")

    def test_missing_file_gives_defaults(self):
        config = load_backplane_config(os.path.join(self.temp_dir, "nope.json"), environ={})
        self.assertIsNone(config.url)
        self.assertIsNone(config.assume_initial_arn)
        self.assertEqual(config.ocm_url, DEFAULT_OCM_URL)
        self.assertEqual(config.region, "us-east-1")

    def test_read_file(self):
        self.write(
            {
                "url": "https://backplane.example.com",
                "proxy-url": "http://proxy:3128",
                "assume-initial-arn": "arn:aws:iam::0:role/initial",
            }
        )
        config = load_backplane_config(self.config_file, environ={})
        self.assertEqual(config.url, "https://backplane.example.com")
        self.assertEqual(config.proxy_url, "http://proxy:3128")
        self.assertEqual(config.assume_initial_arn, "arn:aws:iam::0:role/initial")

    def test_proxy_list_uses_first_entry(self):
        self.write({"proxy-url": ["", "http://proxy-a:3128", "http://proxy-b:3128"]})
        config = load_backplane_config(self.config_file, environ={})
        self.assertEqual(config.proxy_url, "http://proxy-a:3128")

    def test_environment_overrides_file(self):
        self.write({"url": "https://file", "proxy-url": "http://file-proxy"})
        config = load_backplane_config(
            self.config_file,
            environ={
                "BACKPLANE_URL": "https://env",
                "HTTPS_PROXY": "http://env-proxy",
                "BACKPLANE_ASSUME_INITIAL_ARN": "arn:aws:iam::0:role/env",
                "AWS_REGION": "us-west-2",
            },
        )
        self.assertEqual(config.url, "https://env")
        self.assertEqual(config.proxy_url, "http://env-proxy")
        self.assertEqual(config.assume_initial_arn, "arn:aws:iam::0:role/env")
        self.assertEqual(config.region, "us-west-2")

    def test_malformed_json(self):
        self.write("{broken")
        with self.assertRaises(ConfigurationError):
            load_backplane_config(self.config_file, environ={})

    def test_non_object_json(self):
        self.write("[]")
        with self.assertRaises(ConfigurationError):
            load_backplane_config(self.config_file, environ={})


class TestValidateForAssume(unittest.TestCase):
    """Test required-setting checks."""

    def test_missing_initial_arn(self):
        with self.assertRaises(ConfigurationError) as ctx:
            validate_for_assume(BackplaneConfiguration(url="https://bp"), remote=True)
        self.assertIn("assume-initial-arn", str(ctx.exception))

    def test_remote_requires_url(self):
        config = BackplaneConfiguration(assume_initial_arn="arn:aws:iam::0:role/initial")
        with self.assertRaises(ConfigurationError):
            validate_for_assume(config, remote=True)
        validate_for_assume(config, remote=False)


if __name__ == "__main__":
    unittest.main()
