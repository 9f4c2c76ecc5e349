import contextlib
import io
import os
import sys
import tempfile
import unittest
from unittest import mock

sys.path.insert(0, os.path.dirname(__file__))

from publish import publish_dir, s3_client  # noqa: E402


class FakeS3:
	def __init__(self):
		self.uploads = []

	def upload_file(self, path, bucket, key, ExtraArgs=None):
		self.uploads.append((os.path.basename(path), bucket, key, ExtraArgs))


class TestPublish(unittest.TestCase):
	def _out_dir(self, td):
		os.makedirs(os.path.join(td, "gfx"))
		for rel in ("UMAPINFO.txt", "INTERPIC.json", os.path.join("gfx", "BACK01.png")):
			with open(os.path.join(td, rel), "w") as f:
				f.write("x")
		return td

	def test_uploads_every_file_under_prefix(self):
		s3 = FakeS3()
		with tempfile.TemporaryDirectory() as td, contextlib.redirect_stdout(io.StringIO()):
			keys = publish_dir(self._out_dir(td), bucket="wads", prefix="/mods/abc/", client=s3)
		self.assertEqual(sorted(keys), ["mods/abc/INTERPIC.json", "mods/abc/UMAPINFO.txt", "mods/abc/gfx/BACK01.png"])
		by_key = {key: extra for _, _, key, extra in s3.uploads}
		self.assertEqual(by_key["mods/abc/gfx/BACK01.png"], {"ACL": "public-read", "ContentType": "image/png"})
		self.assertEqual(by_key["mods/abc/INTERPIC.json"]["ContentType"], "application/json")
		self.assertEqual({bucket for _, bucket, _, _ in s3.uploads}, {"wads"})

	def test_bucket_from_environment(self):
		s3 = FakeS3()
		with tempfile.TemporaryDirectory() as td, contextlib.redirect_stdout(io.StringIO()), \
				mock.patch.dict(os.environ, {"WADCONV_PUBLISH_BUCKET": "envbucket"}):
			publish_dir(self._out_dir(td), client=s3)
		self.assertEqual({bucket for _, bucket, _, _ in s3.uploads}, {"envbucket"})
		self.assertIn("UMAPINFO.txt", {key for _, _, key, _ in s3.uploads})

	def test_missing_bucket(self):
		with tempfile.TemporaryDirectory() as td, mock.patch.dict(os.environ, {"WADCONV_PUBLISH_BUCKET": ""}):
			with self.assertRaises(ValueError):
				publish_dir(td, client=FakeS3())

	def test_client_uses_endpoint_settings(self):
		env = {"WADCONV_PUBLISH_ENDPOINT": "https://nyc3.digitaloceanspaces.com", "WADCONV_PUBLISH_REGION": "nyc3"}
		with mock.patch.dict(os.environ, env), mock.patch("publish.boto3.client") as client:
			s3_client()
		client.assert_called_once_with("s3", endpoint_url="https://nyc3.digitaloceanspaces.com", region_name="nyc3")


if __name__ == "__main__":
	unittest.main()
