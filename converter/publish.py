#!/usr/bin/env python3

from __future__ import annotations

import mimetypes
import os
from typing import List, Optional

import boto3

from envutil import publish_bucket, publish_endpoint, publish_region


def s3_client(endpoint: Optional[str] = None, region_name: Optional[str] = None):
	return boto3.client(
		"s3",
		endpoint_url=endpoint or publish_endpoint() or None,
		region_name=region_name or publish_region(),
	)


def publish_dir(out_dir: str, *, bucket: Optional[str] = None, prefix: str = "", client=None) -> List[str]:
	"""Upload every file under *out_dir* to s3://bucket/prefix, publicly readable.

	Returns the object keys that were written.
	"""
	bucket = bucket or publish_bucket()
	if not bucket:
		raise ValueError("no publish bucket configured (set WADCONV_PUBLISH_BUCKET or --publish-bucket)")
	s3 = client or s3_client()
	prefix = prefix.strip("/")

	print(f"Uploading files from {out_dir} to s3://{bucket}/{prefix}")
	keys: List[str] = []
	for root, _dirs, files in os.walk(out_dir):
		for fn in sorted(files):
			path = os.path.join(root, fn)
			rel = os.path.relpath(path, out_dir).replace(os.sep, "/")
			key = f"{prefix}/{rel}" if prefix else rel
			content_type = mimetypes.guess_type(fn)[0] or "application/octet-stream"
			s3.upload_file(path, bucket, key, ExtraArgs={"ACL": "public-read", "ContentType": content_type})
			keys.append(key)
	print(f"Uploaded {len(keys)} files to s3://{bucket}/{prefix}")
	return keys
