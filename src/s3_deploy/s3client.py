from botocore.config import Config
from botocore.exceptions import ClientError
from dataclasses import dataclass
from dataclasses import field
from s3_deploy.interfaces import IObjectStore
from zope.interface import implementer

import boto3
import logging


logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


class S3OperationError(Exception):
    """Wraps boto3 ClientError to avoid leaking AWS infrastructure details."""


@dataclass(frozen=True)
class RemoteObject:
    """Snapshot of an object's attributes as returned by HEAD."""

    key: str
    etag: str
    content_type: str = None
    content_encoding: str = None
    cache_control: str = None
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Grant:
    grantee_uri: str
    permission: str


def _optional_args(policy):
    args = {}
    if policy.cache_control:
        args["CacheControl"] = policy.cache_control
    if policy.content_encoding:
        args["ContentEncoding"] = policy.content_encoding
    return args


@implementer(IObjectStore)
class S3Client:
    """Thin boto3 wrapper for S3-compatible object storage."""

    def __init__(
        self,
        bucket_name,
        endpoint_url=None,
        region_name=None,
        aws_access_key_id=None,
        aws_secret_access_key=None,
        addressing_style="auto",
        checksum_calculation="when_required",
        connect_timeout=60,
        read_timeout=60,
        session=None,
    ):
        self.bucket_name = bucket_name

        config = Config(
            s3={"addressing_style": addressing_style},
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            request_checksum_calculation=checksum_calculation,
        )

        kwargs = {"config": config}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        if region_name:
            kwargs["region_name"] = region_name
        # without explicit keys boto3 falls back to its credential chain
        if aws_access_key_id and aws_secret_access_key:
            kwargs["aws_access_key_id"] = aws_access_key_id
            kwargs["aws_secret_access_key"] = aws_secret_access_key

        self._client = (session or boto3).client("s3", **kwargs)

    def _wrap_client_error(self, e, operation, key):
        """Wrap ClientError in a generic error, logging the original at DEBUG."""
        logger.debug("S3 %s failed for key=%s: %s", operation, key, e)
        raise S3OperationError(
            f"S3 {operation} failed for key={key}: "
            f"{e.response['Error'].get('Code', 'Unknown')}"
        ) from e

    def head_object(self, key):
        try:
            head = self._client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if e.response["Error"].get("Code") in NOT_FOUND_CODES:
                return None
            self._wrap_client_error(e, "head", key)
        return RemoteObject(
            key=key,
            etag=head.get("ETag", ""),
            content_type=head.get("ContentType"),
            content_encoding=head.get("ContentEncoding"),
            cache_control=head.get("CacheControl"),
            metadata=dict(head.get("Metadata") or {}),
        )

    def put_object(self, key, local_path, policy):
        with open(local_path, "rb") as body:
            try:
                self._client.put_object(
                    Bucket=self.bucket_name,
                    Key=key,
                    Body=body,
                    ACL=policy.acl,
                    ContentType=policy.content_type,
                    Metadata=policy.metadata,
                    **_optional_args(policy),
                )
            except ClientError as e:
                self._wrap_client_error(e, "put", key)

    def put_redirect(self, key, location):
        try:
            self._client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                ACL="public-read",
                WebsiteRedirectLocation=location,
            )
        except ClientError as e:
            self._wrap_client_error(e, "redirect", key)

    def copy_object(self, key, policy):
        try:
            self._client.copy_object(
                Bucket=self.bucket_name,
                Key=key,
                CopySource={"Bucket": self.bucket_name, "Key": key},
                ACL=policy.acl,
                ContentType=policy.content_type,
                Metadata=policy.metadata,
                MetadataDirective="REPLACE",
                **_optional_args(policy),
            )
        except ClientError as e:
            self._wrap_client_error(e, "copy", key)

    def get_object_acl(self, key):
        try:
            response = self._client.get_object_acl(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            self._wrap_client_error(e, "get-acl", key)
        return [
            Grant(
                grantee_uri=grant.get("Grantee", {}).get("URI"),
                permission=grant.get("Permission"),
            )
            for grant in response.get("Grants", [])
        ]

    def list_objects(self, prefix=""):
        keys = []
        params = {"Bucket": self.bucket_name, "Prefix": prefix}
        while True:
            try:
                page = self._client.list_objects(**params)
            except ClientError as e:
                self._wrap_client_error(e, "list", prefix)
            page_keys = [obj["Key"] for obj in page.get("Contents", [])]
            keys.extend(page_keys)
            if not page.get("IsTruncated") or not page_keys:
                return keys
            # NextMarker is only returned when a delimiter is set
            params["Marker"] = page.get("NextMarker") or page_keys[-1]

    def delete_object(self, key):
        try:
            self._client.delete_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            self._wrap_client_error(e, "delete", key)
