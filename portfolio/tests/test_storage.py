import unittest
from unittest.mock import MagicMock, patch

from portfolio.storage import InMemoryImageStorage, S3ImageStorage, build_object_key


class StorageTests(unittest.TestCase):
    def test_object_key_keeps_extension_and_prefix(self):
        key = build_object_key("/portfolio/", "Photo.JPG", "image/jpeg")
        self.assertTrue(key.startswith("portfolio/"))
        self.assertTrue(key.endswith(".jpg"))
        self.assertEqual(build_object_key("", "x", "image/png")[-4:], ".png")

    def test_in_memory_delete_unknown_key(self):
        storage = InMemoryImageStorage()
        with self.assertRaises(FileNotFoundError):
            storage.delete_image("portfolio/missing.png")

    @patch("portfolio.storage.boto3.client")
    def test_s3_upload_and_delete(self, client_factory):
        s3 = MagicMock()
        client_factory.return_value = s3
        storage = S3ImageStorage(
            bucket="art",
            region="auto",
            endpoint="https://r2.example.com",
            access_key_id="key",
            secret_access_key="secret",
            public_base_url="https://cdn.example.com/",
        )

        stored = storage.upload_image(b"data", "piece.webp", "image/webp")
        s3.put_object.assert_called_once()
        kwargs = s3.put_object.call_args.kwargs
        self.assertEqual(kwargs["Bucket"], "art")
        self.assertEqual(kwargs["ContentType"], "image/webp")
        self.assertEqual(stored.url, f"https://cdn.example.com/{stored.public_id}")

        storage.delete_image(stored.public_id)
        s3.delete_object.assert_called_once_with(Bucket="art", Key=stored.public_id)

    @patch("portfolio.storage.boto3.client")
    def test_s3_public_url_fallbacks(self, client_factory):
        storage = S3ImageStorage(
            bucket="art",
            region="eu-west-1",
            endpoint="",
            access_key_id="",
            secret_access_key="",
        )
        self.assertEqual(
            storage.public_url("a.png"), "https://art.s3.eu-west-1.amazonaws.com/a.png"
        )
        storage.endpoint = "http://minio:9000"
        self.assertEqual(storage.public_url("a.png"), "http://minio:9000/art/a.png")


if __name__ == "__main__":
    unittest.main()
