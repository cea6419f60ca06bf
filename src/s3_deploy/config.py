from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from types import MappingProxyType

import json
import os


DEFAULT_REGION = "us-east-1"
DEFAULT_MAX_CONCURRENCY = 100


class ConfigurationError(ValueError):
    """Invalid settings, raised before any job runs."""


class ChecksumMode(Enum):
    SUPPORTED = "supported"
    REQUIRED = "required"

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ConfigurationError(
                f"invalid checksum calculation mode: {value!r} "
                f"(expected {cls.SUPPORTED.value!r} or {cls.REQUIRED.value!r})"
            ) from None

    @property
    def botocore_value(self):
        return f"when_{self.value}"


def _load_json(value, name):
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{name} is not valid JSON: {e}") from e


def parse_string_map(value, name="value"):
    """Parse a JSON object of string values, e.g. ``{"*.html": "public-read"}``."""
    if not value:
        return {}
    data = _load_json(value, name)
    if not isinstance(data, dict) or not all(
        isinstance(v, str) for v in data.values()
    ):
        raise ConfigurationError(f"{name} must be a JSON object of strings")
    return data


def parse_deep_string_map(value, name="value"):
    """Parse a JSON object mapping patterns to objects of strings."""
    if not value:
        return {}
    data = _load_json(value, name)
    if not isinstance(data, dict):
        raise ConfigurationError(f"{name} must be a JSON object")
    for pattern, inner in data.items():
        if not isinstance(inner, dict) or not all(
            isinstance(v, str) for v in inner.values()
        ):
            raise ConfigurationError(
                f"{name} entry {pattern!r} must be a JSON object of strings"
            )
    return data


def parse_redirects(value, name="redirects"):
    """Parse redirects; a plain string redirects everything (``*``) to it."""
    if not value:
        return {}
    try:
        data = json.loads(value)
    except json.JSONDecodeError:
        return {"*": value}
    if isinstance(data, str):
        return {"*": data}
    if not isinstance(data, dict) or not all(
        isinstance(v, str) for v in data.values()
    ):
        raise ConfigurationError(f"{name} must be a JSON object of strings")
    return data


def _frozen_map(value):
    return MappingProxyType(dict(value or {}))


@dataclass(frozen=True)
class SyncConfig:
    """Settings of one synchronization run.

    Built once and handed to the plan builder, the job runner and the
    gateway factory. ``source`` is an absolute directory, ``target`` a
    key prefix without leading or trailing slash. Pattern maps are
    copied into read-only mappings.
    """

    bucket: str
    source: str = "."
    target: str = ""
    endpoint: str = None
    access_key: str = None
    secret_key: str = None
    region: str = DEFAULT_REGION
    delete: bool = False
    acl: dict = field(default_factory=dict)
    content_type: dict = field(default_factory=dict)
    content_encoding: dict = field(default_factory=dict)
    cache_control: dict = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)
    redirects: dict = field(default_factory=dict)
    cloudfront_distribution: str = None
    dry_run: bool = False
    path_style: bool = False
    allow_empty_source: bool = False
    checksum_calculation: ChecksumMode = ChecksumMode.REQUIRED
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY

    def __post_init__(self):
        if not self.bucket:
            raise ConfigurationError("bucket must not be empty")
        if self.max_concurrency < 1:
            raise ConfigurationError(
                f"max-concurrency must be at least 1, got {self.max_concurrency}"
            )
        object.__setattr__(
            self, "checksum_calculation", ChecksumMode.parse(self.checksum_calculation)
        )
        object.__setattr__(self, "target", self.target.strip("/"))
        for name in (
            "acl",
            "content_type",
            "content_encoding",
            "cache_control",
            "redirects",
        ):
            object.__setattr__(self, name, _frozen_map(getattr(self, name)))
        metadata = {p: _frozen_map(m) for p, m in (self.metadata or {}).items()}
        object.__setattr__(self, "metadata", _frozen_map(metadata))

    @classmethod
    def create(cls, source=".", cwd=None, **kwargs):
        """Build a config resolving source against the working directory."""
        source = os.path.normpath(os.path.join(cwd or os.getcwd(), source))
        return cls(source=source, **kwargs)

    def open(self):
        """Return the (object store, CDN) pair; the CDN is None if unset."""
        from s3_deploy.cloudfront import CloudFrontClient
        from s3_deploy.s3client import S3Client

        import boto3

        session = boto3.Session()
        store = S3Client(
            bucket_name=self.bucket,
            endpoint_url=self.endpoint,
            region_name=self.region,
            aws_access_key_id=self.access_key,
            aws_secret_access_key=self.secret_key,
            addressing_style="path" if self.path_style else "auto",
            checksum_calculation=self.checksum_calculation.botocore_value,
            session=session,
        )
        cdn = None
        if self.cloudfront_distribution:
            cdn = CloudFrontClient(
                distribution_id=self.cloudfront_distribution,
                region_name=self.region,
                aws_access_key_id=self.access_key,
                aws_secret_access_key=self.secret_key,
                session=session,
            )
        return store, cdn
