"""
Storage Adapter - key-addressed object storage on MongoDB GridFS.

Objects are stored and fetched by key (e.g. "pdfs/{user_id}/{file_name}"),
the way an S3 bucket is addressed, so the backing store can be swapped
behind the StorageAdapter interface.
"""
import hashlib
import io
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Union
from gridfs.errors import NoFile
from motor.motor_asyncio import AsyncIOMotorGridFSBucket
from database import database

logger = logging.getLogger(__name__)

PDF_EXPORTS_BUCKET = os.getenv("PDF_EXPORTS_BUCKET", "pdf_exports")


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class FileNotFoundError(StorageError):
    """Object not found in storage."""
    pass


class StoredObject:
    """Metadata for one stored object."""
    def __init__(
        self,
        key: str,
        content_type: str,
        size_bytes: int,
        sha256_hash: str,
        uploaded_at: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self.key = key
        self.content_type = content_type
        self.size_bytes = size_bytes
        self.sha256_hash = sha256_hash
        self.uploaded_at = uploaded_at
        self.metadata = metadata or {}

    @classmethod
    def from_gridfs(cls, file_doc: Dict[str, Any]) -> "StoredObject":
        gridfs_meta = file_doc.get("metadata") or {}
        uploaded_at = gridfs_meta.get("uploaded_at")
        return cls(
            key=file_doc["filename"],
            content_type=gridfs_meta.get("content_type", "application/octet-stream"),
            size_bytes=file_doc.get("length", 0),
            sha256_hash=gridfs_meta.get("sha256_hash", ""),
            uploaded_at=datetime.fromisoformat(uploaded_at) if uploaded_at else None,
            metadata=gridfs_meta.get("custom_metadata", {}),
        )


class StorageAdapter(ABC):
    """Abstract base class for storage implementations."""

    @abstractmethod
    async def upload_file(
        self,
        key: str,
        file_data: Union[bytes, io.BytesIO],
        content_type: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StoredObject:
        """Store an object under key, replacing any existing object."""
        pass

    @abstractmethod
    async def download_file(self, key: str) -> tuple[bytes, StoredObject]:
        """Object content and metadata. Raises FileNotFoundError."""
        pass

    @abstractmethod
    async def delete_file(self, key: str) -> bool:
        """Delete an object. Returns False when nothing was stored under key."""
        pass


class GridFSStorageAdapter(StorageAdapter):
    """
    GridFS-backed storage. The object key is the GridFS filename; the
    newest revision of a filename is the current object.
    """

    def __init__(self, bucket_name: str = PDF_EXPORTS_BUCKET):
        self.bucket_name = bucket_name
        self._bucket = None

    def _get_bucket(self) -> AsyncIOMotorGridFSBucket:
        if self._bucket is None:
            db = database.get_db()
            self._bucket = AsyncIOMotorGridFSBucket(db, bucket_name=self.bucket_name)
        return self._bucket

    def _files(self):
        return database.get_db()[f"{self.bucket_name}.files"]

    async def _find(self, key: str) -> Optional[Dict[str, Any]]:
        cursor = self._files().find({"filename": key}).sort("uploadDate", -1).limit(1)
        docs = await cursor.to_list(1)
        return docs[0] if docs else None

    async def upload_file(
        self,
        key: str,
        file_data: Union[bytes, io.BytesIO],
        content_type: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StoredObject:
        bucket = self._get_bucket()

        content = file_data.getvalue() if hasattr(file_data, "getvalue") else bytes(file_data)
        sha256_hash = hashlib.sha256(content).hexdigest()
        uploaded_at = datetime.now(timezone.utc)

        # Old revisions are dropped so the key addresses exactly one object
        existing = await self._files().find({"filename": key}, {"_id": 1}).to_list(100)
        for doc in existing:
            await bucket.delete(doc["_id"])

        await bucket.upload_from_stream(
            key,
            io.BytesIO(content),
            metadata={
                "content_type": content_type,
                "sha256_hash": sha256_hash,
                "uploaded_at": uploaded_at.isoformat(),
                "custom_metadata": metadata or {},
            },
        )

        logger.info(f"Object stored in GridFS: {key} ({len(content)} bytes)")
        return StoredObject(
            key=key,
            content_type=content_type,
            size_bytes=len(content),
            sha256_hash=sha256_hash,
            uploaded_at=uploaded_at,
            metadata=metadata,
        )

    async def download_file(self, key: str) -> tuple[bytes, StoredObject]:
        file_doc = await self._find(key)
        if not file_doc:
            raise FileNotFoundError(f"Object not found: {key}")

        stream = io.BytesIO()
        try:
            await self._get_bucket().download_to_stream(file_doc["_id"], stream)
        except NoFile:
            raise FileNotFoundError(f"Object not found: {key}")

        return stream.getvalue(), StoredObject.from_gridfs(file_doc)

    async def delete_file(self, key: str) -> bool:
        docs = await self._files().find({"filename": key}, {"_id": 1}).to_list(100)
        if not docs:
            return False
        for doc in docs:
            await self._get_bucket().delete(doc["_id"])
        logger.info(f"Object deleted from GridFS: {key}")
        return True


# Singleton instance
storage_adapter = GridFSStorageAdapter()


def pdf_storage_key(user_id: str, file_name: str) -> str:
    return f"pdfs/{user_id}/{file_name}"


async def upload_pdf_export(
    user_id: str,
    file_data: Union[bytes, io.BytesIO],
    filename: str,
    content_type: str = "application/pdf",
    client_id: Optional[str] = None,
) -> StoredObject:
    """Store a PDF export for a user under pdfs/{user_id}/{filename}."""
    return await storage_adapter.upload_file(
        key=pdf_storage_key(user_id, filename),
        file_data=file_data,
        content_type=content_type,
        metadata={"user_id": user_id, "client_id": client_id},
    )


async def get_file_content(key: str) -> io.BytesIO:
    """
    Object content as a BytesIO, for streaming responses.
    Raises FileNotFoundError when the object is missing or unreadable.
    """
    try:
        content, _ = await storage_adapter.download_file(key)
        return io.BytesIO(content)
    except FileNotFoundError:
        raise
    except Exception as e:
        logger.error(f"Failed to get file content for {key}: {e}")
        raise FileNotFoundError(f"Object not found: {key}")
