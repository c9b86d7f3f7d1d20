import json
import unittest
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

from backend import config
from backend.config import Settings
from shared.errors import ConfigError


def _settings(**values):
    return Settings(_env_file=None, **values)


class LoadSettingsTests(unittest.TestCase):
    def setUp(self):
        patcher = patch.dict("os.environ", {}, clear=True)
        patcher.start()
        self.addCleanup(patcher.stop)

    @patch("backend.config.Settings")
    @patch("backend.config.load_secrets")
    def test_local_development_skips_secrets(self, mock_load_secrets, mock_settings):
        mock_settings.return_value = _settings()

        settings = config.load_settings()

        mock_load_secrets.assert_not_called()
        self.assertEqual(settings.secrets_source, "Local .env")

    @patch("backend.config.Settings")
    @patch("backend.config.load_secrets")
    def test_secrets_overlay_environment(self, mock_load_secrets, mock_settings):
        mock_settings.return_value = _settings(
            environment="production", s3_bucket_name="from-env"
        )
        mock_load_secrets.return_value = {
            "S3_BUCKET_NAME": "from-secret",
            "MONGODB_URI": "mongodb://secret",
            "AWS_REGION": "",
        }

        settings = config.load_settings()

        mock_load_secrets.assert_called_once_with(
            "question-bank/secrets", "ap-southeast-2"
        )
        self.assertEqual(settings.s3_bucket_name, "from-secret")
        self.assertEqual(settings.mongodb_uri, "mongodb://secret")
        self.assertIsNone(settings.aws_region)
        self.assertEqual(settings.secrets_source, "AWS Secrets Manager")

    @patch("backend.config.Settings")
    @patch("backend.config.load_secrets")
    def test_falls_back_when_secret_unavailable(self, mock_load_secrets, mock_settings):
        mock_settings.return_value = _settings(
            use_secrets_manager=True, s3_bucket_name="from-env"
        )
        mock_load_secrets.side_effect = ClientError(
            {"Error": {"Code": "ResourceNotFoundException", "Message": "missing"}},
            "GetSecretValue",
        )

        settings = config.load_settings()

        self.assertEqual(settings.s3_bucket_name, "from-env")
        self.assertEqual(settings.secrets_source, "Local .env")

    @patch("backend.config.boto3.client")
    def test_load_secrets_decodes_json(self, mock_client_factory):
        client = MagicMock()
        client.get_secret_value.return_value = {
            "SecretString": json.dumps({"MONGODB_URI": "mongodb://x"})
        }
        mock_client_factory.return_value = client

        secrets = config.load_secrets("name", "us-east-1")

        self.assertEqual(secrets, {"MONGODB_URI": "mongodb://x"})
        mock_client_factory.assert_called_once_with(
            "secretsmanager", region_name="us-east-1"
        )

    @patch("backend.config.boto3.client")
    def test_load_secrets_rejects_empty_secret(self, mock_client_factory):
        mock_client_factory.return_value.get_secret_value.return_value = {}
        with self.assertRaises(ConfigError):
            config.load_secrets("name", "us-east-1")


class ValidateSettingsTests(unittest.TestCase):
    def test_reports_every_missing_setting(self):
        settings = _settings(aws_region="ap-southeast-2", s3_bucket_name="bucket")

        self.assertEqual(
            config.missing_required_settings(settings),
            ["AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "MONGODB_URI"],
        )
        with self.assertRaises(ConfigError) as ctx:
            config.validate_settings(settings)
        self.assertIn("Missing required secrets", str(ctx.exception))
        self.assertIn("MONGODB_URI", str(ctx.exception))

    def test_complete_settings_pass(self):
        settings = _settings(
            aws_region="ap-southeast-2",
            aws_access_key_id="key",
            aws_secret_access_key="secret",
            s3_bucket_name="bucket",
            mongodb_uri="mongodb://localhost",
        )
        config.validate_settings(settings)


if __name__ == "__main__":
    unittest.main()
