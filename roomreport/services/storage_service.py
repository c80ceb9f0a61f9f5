# roomreport/services/storage_service.py

import logging
import os
from datetime import datetime
from typing import BinaryIO, Iterator

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError

from roomreport.core.config import Settings, settings

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class StorageError(Exception):
    """Raised when a storage backend cannot complete an operation"""


class FileTooLargeError(StorageError):
    pass


def build_object_key(room_number: str, original_filename: str, now: datetime | None = None,
                     sequence: int = 0) -> tuple[str, str]:
    """
    Returns (key, filename) for a new upload, laid out as
    <YYYY>/<MM>/room_<number>/video_<YYYYMMDD_HHMMSS>_<number>[_<sequence>]<ext>.
    """
    now = now or datetime.now()
    ext = os.path.splitext(original_filename or "")[1]
    suffix = f"_{sequence}" if sequence else ""
    filename = f"video_{now.strftime('%Y%m%d_%H%M%S')}_{room_number}{suffix}{ext}"
    key = "/".join([now.strftime("%Y"), now.strftime("%m"), f"room_{room_number}", filename])
    return key, filename


class StorageService:
    """
    Interface shared by the storage backends. Keys are always '/' separated.
    """
    def save(self, key: str, fileobj: BinaryIO, max_size: int | None = None) -> int:
        raise NotImplementedError

    def open(self, key: str) -> Iterator[bytes]:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def local_path(self, key: str) -> str | None:
        """Filesystem path of the object, when the backend has one"""
        return None


class LocalStorage(StorageService):
    """
    Stores uploads on the local filesystem under `root`.
    """
    def __init__(self, root: str):
        self.root = os.path.abspath(root)
        os.makedirs(self.root, exist_ok=True)

    def local_path(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.root, *key.split("/")))
        if os.path.commonpath([path, self.root]) != self.root:
            raise StorageError(f"Key escapes the upload directory: {key}")
        return path

    def save(self, key: str, fileobj: BinaryIO, max_size: int | None = None) -> int:
        path = self.local_path(key)
        os.makedirs(os.path.dirname(path), exist_ok=True)

        size = 0
        try:
            with open(path, "wb") as out:
                while True:
                    chunk = fileobj.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if max_size is not None and size > max_size:
                        raise FileTooLargeError(f"{key} exceeds {max_size} bytes")
                    out.write(chunk)
        except Exception:
            if os.path.exists(path):
                os.remove(path)
            raise
        return size

    def open(self, key: str) -> Iterator[bytes]:
        path = self.local_path(key)
        if not os.path.isfile(path):
            raise StorageError(f"No such object: {key}")

        def reader():
            with open(path, "rb") as f:
                while True:
                    chunk = f.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    yield chunk

        return reader()

    def exists(self, key: str) -> bool:
        return os.path.isfile(self.local_path(key))

    def delete(self, key: str) -> None:
        path = self.local_path(key)
        try:
            os.remove(path)
        except OSError as e:
            raise StorageError(f"Failed to delete {key}: {e}") from e


class R2Storage(StorageService):
    """
    Stores uploads in a Cloudflare R2 bucket through its S3 API.
    """
    def __init__(self, config: Settings, client=None):
        self.bucket_name = config.R2_BUCKET_NAME
        if client is not None:
            self.client = client
            return
        try:
            self.client = boto3.client(
                service_name='s3',
                endpoint_url=config.R2_ENDPOINT_URL,
                aws_access_key_id=config.R2_ACCESS_KEY_ID,
                aws_secret_access_key=config.R2_SECRET_ACCESS_KEY,
                config=Config(signature_version='s3v4'),
                region_name='auto'  # For Cloudflare R2, 'auto' is standard
            )
            logger.info("Successfully connected to Cloudflare R2.")
        except Exception as e:
            raise StorageError(f"Error connecting to R2: {e}") from e

    def save(self, key: str, fileobj: BinaryIO, max_size: int | None = None) -> int:
        fileobj.seek(0, os.SEEK_END)
        size = fileobj.tell()
        fileobj.seek(0)
        if max_size is not None and size > max_size:
            raise FileTooLargeError(f"{key} exceeds {max_size} bytes")
        try:
            self.client.upload_fileobj(fileobj, self.bucket_name, key)
        except ClientError as e:
            raise StorageError(f"Error uploading {key}: {e}") from e
        return size

    def open(self, key: str) -> Iterator[bytes]:
        try:
            response = self.client.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            raise StorageError(f"No such object: {key}") from e
        return response["Body"].iter_chunks(chunk_size=CHUNK_SIZE)

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket_name, Key=key)
            return True
        except ClientError:
            return False

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            raise StorageError(f"Failed to delete {key}: {e}") from e


def create_storage_service(config: Settings = settings) -> StorageService:
    if config.STORAGE_BACKEND == "r2":
        return R2Storage(config)
    if config.STORAGE_BACKEND != "local":
        raise ValueError(f"Unknown STORAGE_BACKEND: {config.STORAGE_BACKEND}")
    return LocalStorage(config.UPLOAD_DIR)


_storage_service: StorageService | None = None


def get_storage_service() -> StorageService:
    """FastAPI dependency returning the configured backend"""
    global _storage_service
    if _storage_service is None:
        _storage_service = create_storage_service()
    return _storage_service
