#
# Copyright 2025 Firmirror contributors
#
# SPDX-License-Identifier: LGPL-2.1-or-later
#
"""Key/blob storage for the published repository.

Keys are flat artifact names such as ``metadata.xml.zst`` or
``<firmware>.cab``.
"""

import logging
import os
import shutil
import tempfile

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from firmirror.common import StorageError

LOGGER = logging.getLogger(__name__)


class Storage:
    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def read(self, key: str):
        """Returns a binary file object, closed by the caller"""
        raise NotImplementedError

    def write(self, key: str, fileobj) -> None:
        raise NotImplementedError


class LocalStorage(Storage):
    def __init__(self, root):
        self.root = os.path.abspath(root)
        try:
            os.makedirs(self.root, exist_ok=True)
        except OSError as e:
            raise StorageError(f"cannot create {self.root}: {e}") from e

    def _path(self, key):
        path = os.path.abspath(os.path.join(self.root, key))
        if os.path.dirname(path) != self.root:
            raise StorageError(f"invalid storage key {key!r}")
        return path

    def exists(self, key):
        return os.path.isfile(self._path(key))

    def read(self, key):
        try:
            return open(self._path(key), "rb")
        except OSError as e:
            raise StorageError(f"cannot read {key}: {e}") from e

    def write(self, key, fileobj):
        path = self._path(key)
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                shutil.copyfileobj(fileobj, f)
            os.replace(tmp, path)
        except OSError as e:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise StorageError(f"cannot write {key}: {e}") from e
        LOGGER.debug("Wrote %s", path)


class S3Storage(Storage):
    """Objects in an S3 bucket, credentials taken from the environment"""

    def __init__(self, bucket, prefix="", region="us-east-1", endpoint=""):
        if not bucket:
            raise StorageError("an S3 bucket name is required")
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.client = boto3.client(
            "s3",
            region_name=region or None,
            endpoint_url=endpoint or None,
        )

    def _key(self, key):
        return f"{self.prefix}/{key}" if self.prefix else key

    def exists(self, key):
        try:
            self.client.head_object(Bucket=self.bucket, Key=self._key(key))
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(f"cannot stat s3://{self.bucket}/{self._key(key)}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"cannot stat s3://{self.bucket}/{self._key(key)}: {e}") from e
        return True

    def read(self, key):
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=self._key(key))
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"cannot read s3://{self.bucket}/{self._key(key)}: {e}") from e
        return resp["Body"]

    def write(self, key, fileobj):
        try:
            self.client.upload_fileobj(fileobj, self.bucket, self._key(key))
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"cannot write s3://{self.bucket}/{self._key(key)}: {e}") from e
        LOGGER.debug("Uploaded s3://%s/%s", self.bucket, self._key(key))


def create_storage(settings):
    """Creates the backend selected by the configuration"""
    if settings.s3.enable:
        LOGGER.info(
            "Using S3 storage backend bucket=%s prefix=%s",
            settings.s3.bucket,
            settings.s3.prefix,
        )
        return S3Storage(
            settings.s3.bucket,
            settings.s3.prefix,
            settings.s3.region,
            settings.s3.endpoint,
        )
    LOGGER.info("Using local filesystem storage path=%s", settings.output_dir)
    return LocalStorage(settings.output_dir)
