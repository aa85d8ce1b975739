"""
Artifact stores: the local filesystem and S3.

Both map "/"-separated logical paths onto blobs and translate backend
failures into StoreError / NotFound so the pipeline never sees a library
exception.
"""

import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from meetnotes.core.contracts import ArtifactStore
from meetnotes.core.error_codes import NotFound, StoreError
from meetnotes.core.models import StoredObject
from meetnotes.core.security_utils import is_within

logger = logging.getLogger(__name__)

_S3_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


class LocalArtifactStore(ArtifactStore):
    """Stores artifacts as plain files beneath a root directory."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        if not path or path.startswith('/'):
            raise StoreError(f"Invalid artifact path: {path!r}")
        candidate = self.root / path
        if not is_within(self.root, candidate) or candidate.resolve() == self.root.resolve():
            raise StoreError(f"Artifact path escapes store root: {path!r}")
        return candidate

    def put(self, path: str, data: bytes, content_type: str) -> None:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            # Write to a sibling temp file, then rename: readers never see a partial blob
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp-")
            try:
                with os.fdopen(fd, 'wb') as f:
                    f.write(data)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StoreError(f"Failed to write {path}: {e}")
        logger.debug("Stored %s (%d bytes, %s)", path, len(data), content_type)

    def get(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError:
            raise NotFound(f"No artifact at {path}")
        except OSError as e:
            raise StoreError(f"Failed to read {path}: {e}")

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.unlink(missing_ok=True)
        except OSError as e:
            raise StoreError(f"Failed to delete {path}: {e}")
        self._prune_empty_dirs(target.parent)

    def _prune_empty_dirs(self, directory: Path):
        """Remove now-empty folders between an artifact and the store root."""
        root = self.root.resolve()
        current = directory.resolve()
        while current != root and root in current.parents:
            try:
                current.rmdir()
            except OSError:
                break  # not empty, or already gone
            current = current.parent

    def list(self, prefix: str) -> list[StoredObject]:
        base = self.root.resolve()
        objects = []
        for file_path in base.rglob('*'):
            if not file_path.is_file() or file_path.name.startswith('.tmp-'):
                continue
            rel = file_path.relative_to(base).as_posix()
            if not rel.startswith(prefix):
                continue
            mtime = datetime.fromtimestamp(file_path.stat().st_mtime, tz=timezone.utc)
            objects.append(StoredObject(path=rel, last_modified=mtime.isoformat()))
        objects.sort(key=lambda o: o.path)
        return objects


class S3ArtifactStore(ArtifactStore):
    """Stores artifacts as objects in a single S3 bucket."""

    def __init__(self, bucket: str, client=None, region: str | None = None,
                 timeout_sec: int = 60):
        if not bucket:
            raise StoreError("S3 bucket name is not configured", retryable=False)
        self.bucket = bucket
        self.client = client or boto3.client(
            "s3",
            region_name=region,
            config=Config(connect_timeout=10, read_timeout=timeout_sec,
                          retries={"max_attempts": 3}),
        )

    def uri_for(self, path: str) -> str:
        return f"s3://{self.bucket}/{path}"

    def put(self, path: str, data: bytes, content_type: str) -> None:
        try:
            self.client.put_object(Bucket=self.bucket, Key=path, Body=data,
                                   ContentType=content_type)
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"Failed to upload {self.uri_for(path)}: {e}")
        logger.debug("Uploaded %s (%d bytes)", self.uri_for(path), len(data))

    def get(self, path: str) -> bytes:
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=path)
            return resp["Body"].read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _S3_MISSING_CODES:
                raise NotFound(f"No artifact at {self.uri_for(path)}")
            raise StoreError(f"Failed to read {self.uri_for(path)}: {e}")
        except BotoCoreError as e:
            raise StoreError(f"Failed to read {self.uri_for(path)}: {e}")

    def delete(self, path: str) -> None:
        # S3 DeleteObject succeeds for missing keys
        try:
            self.client.delete_object(Bucket=self.bucket, Key=path)
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"Failed to delete {self.uri_for(path)}: {e}")

    def list(self, prefix: str) -> list[StoredObject]:
        objects = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    modified = obj.get("LastModified") or datetime.now(timezone.utc)
                    objects.append(StoredObject(path=obj["Key"],
                                                last_modified=modified.isoformat()))
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"Failed to list s3://{self.bucket}/{prefix}: {e}")
        return objects
