import base64
import io
import struct
import unittest
import zlib
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError
from PIL import Image

from muzac.errors import UpstreamFailure, ValidationFailure
from muzac.image_utils import compress_image, decode_image_data
from muzac.images import ImageCalendar, image_key
from muzac.storage import InMemoryStorageClient, S3StorageClient


def make_png(width=40, height=20, color=(200, 10, 10, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


class ImageUtilsTests(unittest.TestCase):
    def test_decode_plain_and_data_url(self):
        raw = b"\xff\xd8hello"
        encoded = base64.b64encode(raw).decode()
        self.assertEqual(decode_image_data(encoded), raw)
        self.assertEqual(decode_image_data(f"data:image/jpeg;base64,{encoded}"), raw)

    def test_decode_rejects_garbage(self):
        with self.assertRaises(ValidationFailure):
            decode_image_data("not base64 !!")

    def test_compress_resizes_and_reencodes_as_jpeg(self):
        out = compress_image(make_png(400, 100), max_dimension=100, quality=70)
        with Image.open(io.BytesIO(out)) as img:
            self.assertEqual(img.format, "JPEG")
            self.assertEqual(img.size, (100, 25))
            self.assertEqual(img.mode, "RGB")

    def test_compress_never_upscales(self):
        out = compress_image(make_png(40, 20), max_dimension=1920)
        with Image.open(io.BytesIO(out)) as img:
            self.assertEqual(img.size, (40, 20))

    def test_compress_rejects_non_images(self):
        with self.assertRaises(ValidationFailure):
            compress_image(b"definitely not an image")

    def test_compress_rejects_decompression_bombs(self):
        ihdr = struct.pack(">IIBBBBB", 20000, 20000, 8, 2, 0, 0, 0)
        header = b"IHDR" + ihdr
        png = (
            b"\x89PNG\r\n\x1a\n"
            + struct.pack(">I", len(ihdr)) + header
            + struct.pack(">I", zlib.crc32(header) & 0xFFFFFFFF)
            + struct.pack(">I", 0) + b"IEND"
            + struct.pack(">I", zlib.crc32(b"IEND") & 0xFFFFFFFF)
        )
        with self.assertRaises(ValidationFailure) as ctx:
            compress_image(png)
        self.assertEqual(ctx.exception.as_body(), {"message": "Invalid image data"})


class ImageCalendarTests(unittest.TestCase):
    def setUp(self):
        self.storage = InMemoryStorageClient(bucket="images")
        self.now = datetime(2024, 5, 17, 23, 30, tzinfo=timezone.utc)
        self.calendar = ImageCalendar(
            storage=self.storage, compress=False, clock=lambda: self.now
        )

    def test_upload_writes_todays_key(self):
        day = self.calendar.upload_image("a@b.c", b"one")
        self.assertEqual(day, "2024-05-17")
        self.assertEqual(
            self.storage.get_bytes("daily-images/a@b.c/2024-05-17.jpg"), b"one"
        )
        self.assertEqual(
            self.storage.stored_objects["daily-images/a@b.c/2024-05-17.jpg"][1],
            "image/jpeg",
        )

    def test_same_day_upload_overwrites(self):
        self.calendar.upload_image("a@b.c", b"first")
        self.calendar.upload_image("a@b.c", b"second")
        images = self.calendar.list_images("a@b.c")
        self.assertEqual(len(images), 1)
        self.assertEqual(
            self.storage.get_bytes(image_key("a@b.c", images[0].date)), b"second"
        )

    def test_list_sorted_descending_and_scoped_to_owner(self):
        for day in ("2024-01-02", "2024-03-01", "2023-12-31"):
            self.storage.put_bytes(image_key("a@b.c", day), b"x")
        self.storage.put_bytes(image_key("shared", "2024-06-01"), b"x")
        self.storage.put_bytes("daily-images/a@b.c/", b"")

        images = self.calendar.list_images("a@b.c")
        self.assertEqual(
            [image.date for image in images], ["2024-03-01", "2024-01-02", "2023-12-31"]
        )
        self.assertIn("daily-images/a@b.c/2024-03-01.jpg", images[0].url)

    def test_date_uses_utc(self):
        from datetime import timedelta

        self.now = datetime(2024, 5, 18, 1, 0, tzinfo=timezone(timedelta(hours=3)))
        self.assertEqual(self.calendar.today(), "2024-05-17")

    def test_upload_compresses_when_enabled(self):
        calendar = ImageCalendar(
            storage=self.storage, max_dimension=10, clock=lambda: self.now
        )
        calendar.upload_image("a@b.c", make_png(40, 20))
        stored = self.storage.get_bytes("daily-images/a@b.c/2024-05-17.jpg")
        with Image.open(io.BytesIO(stored)) as img:
            self.assertEqual(img.format, "JPEG")
            self.assertEqual(img.size, (10, 5))


class S3StorageClientTests(unittest.TestCase):
    @patch("muzac.storage.boto3.client")
    def test_operations_use_bucket(self, mock_client_factory):
        s3 = MagicMock()
        mock_client_factory.return_value = s3
        paginator = MagicMock()
        paginator.paginate.return_value = [
            {"Contents": [{"Key": "daily-images/a/2024-01-01.jpg"}]},
            {},
        ]
        s3.get_paginator.return_value = paginator
        s3.generate_presigned_url.return_value = "https://signed"

        client = S3StorageClient(bucket="images", timeout_seconds=5)
        client.put_bytes("k", b"data", content_type="image/jpeg")
        s3.put_object.assert_called_once_with(
            Bucket="images", Key="k", Body=b"data", ContentType="image/jpeg"
        )
        self.assertEqual(client.list_keys("daily-images/a/"), ["daily-images/a/2024-01-01.jpg"])
        paginator.paginate.assert_called_once_with(Bucket="images", Prefix="daily-images/a/")

        self.assertEqual(client.presign_get("k", expires_in=60, bucket="videos"), "https://signed")
        s3.generate_presigned_url.assert_called_once_with(
            ClientMethod="get_object",
            Params={"Bucket": "videos", "Key": "k"},
            ExpiresIn=60,
        )

        config = mock_client_factory.call_args.kwargs["config"]
        self.assertEqual(config.read_timeout, 5)

    @patch("muzac.storage.boto3.client")
    def test_put_failure_is_upstream(self, mock_client_factory):
        s3 = MagicMock()
        s3.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "nope"}}, "PutObject"
        )
        mock_client_factory.return_value = s3
        client = S3StorageClient(bucket="images")
        with self.assertRaises(UpstreamFailure):
            client.put_bytes("k", b"data")


if __name__ == "__main__":
    unittest.main()
