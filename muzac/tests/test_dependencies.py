import unittest
from unittest.mock import patch

from muzac import dependencies
from muzac.config import Settings
from muzac.db import DynamoDbClient, InMemoryDbClient, SqlDbClient
from muzac.identity import InMemoryIdentityProvider
from muzac.storage import InMemoryStorageClient
from muzac.video import InMemoryRenderer


class DependencySelectionTests(unittest.TestCase):
    def setUp(self):
        dependencies.reset_clients()
        self.addCleanup(dependencies.reset_clients)

    @patch("muzac.dependencies.get_settings")
    def test_in_memory_toggle(self, mock_settings):
        mock_settings.return_value = Settings(
            use_in_memory_backends=True,
            images_bucket="images",
            user_pool_client_id="client",
            database_url="sqlite+pysqlite:///:memory:",
        )
        self.assertIsInstance(dependencies.get_identity_provider(), InMemoryIdentityProvider)
        self.assertIsInstance(dependencies.get_image_storage(), InMemoryStorageClient)
        self.assertIsInstance(dependencies.get_db_client(), InMemoryDbClient)
        self.assertIsInstance(dependencies.get_renderer(), InMemoryRenderer)

    @patch("muzac.dependencies.get_settings")
    def test_singletons_are_cached(self, mock_settings):
        mock_settings.return_value = Settings(use_in_memory_backends=True)
        self.assertIs(dependencies.get_db_client(), dependencies.get_db_client())
        self.assertIs(dependencies.get_video_storage(), dependencies.get_video_storage())

    @patch("muzac.dependencies.get_settings")
    def test_database_url_selects_sql(self, mock_settings):
        mock_settings.return_value = Settings(
            database_url="sqlite+pysqlite:///:memory:",
            user_preferences_table="prefs",
        )
        self.assertIsInstance(dependencies.get_db_client(), SqlDbClient)

    @patch("muzac.db.boto3")
    @patch("muzac.dependencies.get_settings")
    def test_tables_select_dynamo(self, mock_settings, mock_boto3):
        mock_settings.return_value = Settings(
            user_preferences_table="prefs",
            family_tree_table="family",
            aws_region="eu-central-1",
        )
        self.assertIsInstance(dependencies.get_db_client(), DynamoDbClient)
        mock_boto3.resource.assert_called_once_with("dynamodb", region_name="eu-central-1")

    @patch("muzac.dependencies.get_settings")
    def test_image_calendar_uses_settings(self, mock_settings):
        mock_settings.return_value = Settings(
            use_in_memory_backends=True,
            compress_uploads=False,
            presign_expires_in=120,
        )
        calendar = dependencies.get_image_calendar(dependencies.get_image_storage())
        self.assertFalse(calendar.compress)
        self.assertEqual(calendar.expires_in, 120)


class SettingsTests(unittest.TestCase):
    def test_in_memory_flag_reads_prefixed_env(self):
        with patch.dict("os.environ", {"MUZAC_USE_IN_MEMORY_BACKENDS": "true"}):
            self.assertTrue(Settings().use_in_memory_backends)

    def test_allowed_origins_default(self):
        self.assertIn("http://localhost:3000", Settings().allowed_origins)


if __name__ == "__main__":
    unittest.main()
