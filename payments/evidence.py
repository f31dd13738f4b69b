"""
Payment evidence store.

Transfer screenshots are written to a private S3 bucket and are only
ever read back through short-lived presigned URLs.  Registrations keep
the object key (the proof reference), never a URL.  Older records may
hold an absolute URL or an inline data URI instead of a key; those are
already dereferenceable and are passed through untouched.
"""
import logging
import os
import re
import uuid

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from .exceptions import EvidenceRejected, EvidenceStoreError

logger = logging.getLogger("payments")

_EXTERNAL_REF = re.compile(r"^(https?://|data:|blob:)", re.IGNORECASE)
_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9_-]+$")
_KEY_TAIL = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\.[a-z0-9_-]+$")


def is_external_reference(proof_ref: str) -> bool:
    """True when the reference can be shown as-is without signing."""
    return bool(proof_ref) and bool(_EXTERNAL_REF.match(proof_ref))


def is_event_proof_key(proof_ref: str, event_id) -> bool:
    """True only for object keys shaped like `S3EvidenceStore.build_key` output for this event."""
    prefix = settings.PAYMENT_PROOF_PREFIX.strip("/")
    head = f"{prefix}/{event_id}/"
    if not proof_ref or not proof_ref.startswith(head):
        return False
    return bool(_KEY_TAIL.match(proof_ref[len(head):]))


def validate_evidence(content_type: str, size: int) -> None:
    """
    Local checks before anything is uploaded: image MIME type and size cap.
    """
    if not (content_type or "").lower().startswith("image/"):
        raise EvidenceRejected("Please upload an image file")
    max_bytes = settings.PAYMENT_PROOF_MAX_BYTES
    if size > max_bytes:
        raise EvidenceRejected(f"Image size must be less than {max_bytes // (1024 * 1024)}MB")


def _extension(filename: str, content_type: str) -> str:
    _, ext = os.path.splitext(filename or "")
    if ext and _SAFE_SEGMENT.match(ext[1:]):
        return ext.lower()
    subtype = (content_type or "").split("/")[-1].lower()
    return f".{subtype}" if _SAFE_SEGMENT.match(subtype or "") else ".jpg"


class S3EvidenceStore:
    """Upload payment proofs and presign them for staff review."""

    def __init__(self, bucket=None, region=None, client=None):
        self.bucket = bucket or settings.PAYMENT_PROOF_BUCKET
        self.region = region or settings.AWS_S3_REGION_NAME
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                region_name=self.region,
                config=Config(signature_version="s3v4"),
            )
        return self._client

    def build_key(self, event_id, filename="", content_type="") -> str:
        event_segment = str(event_id)
        if not _SAFE_SEGMENT.match(event_segment):
            raise EvidenceRejected("Invalid event id")
        prefix = settings.PAYMENT_PROOF_PREFIX.strip("/")
        return f"{prefix}/{event_segment}/{uuid.uuid4()}{_extension(filename, content_type)}"

    def upload_evidence(self, fileobj, content_type: str, event_id, filename="", size=None) -> str:
        """Validate, store and return the proof reference (object key)."""
        if size is None:
            size = getattr(fileobj, "size", 0) or 0
        validate_evidence(content_type, size)
        key = self.build_key(event_id, filename, content_type)
        try:
            self.client.upload_fileobj(
                fileobj,
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type, "CacheControl": "max-age=3600"},
            )
        except (BotoCoreError, ClientError) as exc:
            logger.exception("Payment proof upload failed bucket=%s key=%s", self.bucket, key)
            raise EvidenceStoreError("Failed to upload payment proof") from exc
        logger.info("Stored payment proof bucket=%s key=%s", self.bucket, key)
        return key

    def get_signed_url(self, proof_ref: str, expires_in=None) -> str:
        """Exchange a proof reference for a time-limited URL."""
        if is_external_reference(proof_ref):
            return proof_ref
        ttl = settings.PAYMENT_PROOF_URL_TTL if expires_in is None else int(expires_in)
        ttl = min(max(ttl, 60), settings.PAYMENT_PROOF_URL_MAX_TTL)
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": proof_ref},
                ExpiresIn=ttl,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.exception("Failed to sign payment proof key=%s", proof_ref)
            raise EvidenceStoreError("Failed to sign payment proof URL") from exc
