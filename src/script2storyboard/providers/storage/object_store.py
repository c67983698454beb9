# -*- coding: utf-8 -*-
"""
providers/storage/object_store.py

对象存储上传（手动上传的替换图片等）。
- S3 兼容接口，用 boto3；阿里云 OSS / R2 都可以按 endpoint 接入。
- upload(data, path) -> 公网 URL
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import boto3
from botocore.client import Config

from script2storyboard.config import load_settings, require

logger = logging.getLogger(__name__)


def generate_object_path(project_id: str, shot_number: str, kind: str, ext: str) -> str:
	"""storyboard/{project}/{image|video}/shot_{n}_{ts}.{ext}"""
	ts = int(time.time() * 1000)
	return f"storyboard/{project_id}/{kind}/shot_{shot_number}_{ts}.{ext}"


@dataclass
class ObjectStoreConfig:
	endpoint: str
	access_key_id: str
	access_key_secret: str
	bucket: str
	public_url: str


class ObjectStore:
	def __init__(self, cfg: ObjectStoreConfig, s3_client: Optional[Any] = None):
		self.cfg = cfg
		self._s3 = s3_client or boto3.client(
			"s3",
			endpoint_url=cfg.endpoint,
			aws_access_key_id=cfg.access_key_id,
			aws_secret_access_key=cfg.access_key_secret,
			config=Config(signature_version="s3v4"),
		)

	def public_url_for(self, path: str) -> str:
		base = self.cfg.public_url.rstrip("/")
		return f"{base}/{path.lstrip('/')}"

	def upload(self, data: bytes, path: str, content_type: str = "image/jpeg") -> str:
		self._s3.put_object(
			Bucket=self.cfg.bucket,
			Key=path,
			Body=data,
			ContentType=content_type,
		)
		url = self.public_url_for(path)
		logger.info("uploaded %d bytes -> %s", len(data), url)
		return url


def load_object_store(project_root: Optional[str] = None, s3_client: Optional[Any] = None) -> ObjectStore:
	s = load_settings(project_root).object_store
	cfg = ObjectStoreConfig(
		endpoint=require(s.endpoint, "OSS_ENDPOINT"),
		access_key_id=require(s.access_key_id, "OSS_ACCESS_KEY_ID"),
		access_key_secret=require(s.access_key_secret, "OSS_ACCESS_KEY_SECRET"),
		bucket=require(s.bucket, "OSS_BUCKET"),
		public_url=require(s.public_url, "OSS_PUBLIC_URL"),
	)
	return ObjectStore(cfg, s3_client=s3_client)
