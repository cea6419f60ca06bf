"""Decide whether a local file must be uploaded, skipped or re-tagged.

The content check compares the MD5 of the local file with the remote
ETag. When the content is identical, the object attributes are compared
one by one and the first difference found is reported as the reason for
a metadata-only update. The ACL is compared last because it needs an
extra request.
"""

from dataclasses import dataclass
from enum import Enum

import hashlib


ALL_USERS = "http://acs.amazonaws.com/groups/global/AllUsers"
AUTHENTICATED_USERS = "http://acs.amazonaws.com/groups/global/AuthenticatedUsers"

_CHUNK_SIZE = 1024 * 1024


class DecisionAction(Enum):
    UPLOAD = "upload"
    SKIP = "skip"
    UPDATE_METADATA = "update-metadata"


@dataclass(frozen=True)
class Decision:
    action: DecisionAction
    reason: str = ""

    @classmethod
    def upload(cls, reason):
        return cls(DecisionAction.UPLOAD, reason)

    @classmethod
    def skip(cls):
        return cls(DecisionAction.SKIP, "hashes and metadata match")

    @classmethod
    def update_metadata(cls, reason):
        return cls(DecisionAction.UPDATE_METADATA, reason)


def file_md5(path):
    """Hex MD5 of a file, read in chunks."""
    digest = hashlib.md5(usedforsecurity=False)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def local_etag(path):
    """The ETag S3 reports for a single-part upload of this file."""
    return f'"{file_md5(path)}"'


def same_content(etag_a, etag_b):
    # Some S3-compatible stores quote ETags with single quotes
    return etag_a.strip("\"'") == etag_b.strip("\"'")


def canned_acl_from_grants(grants):
    """Map the grants of an object back to the canned ACL that produces them."""
    all_users = {g.permission for g in grants if g.grantee_uri == ALL_USERS}
    authenticated = {
        g.permission for g in grants if g.grantee_uri == AUTHENTICATED_USERS
    }
    if "WRITE" in all_users:
        return "public-read-write"
    if "READ" in all_users:
        return "public-read"
    if "READ" in authenticated:
        return "authenticated-read"
    return "private"


def _changed(label, remote_value, desired_value):
    if remote_value is None:
        if desired_value:
            return f"{label} has changed from unset to {desired_value}"
        return None
    if remote_value != (desired_value or ""):
        return f"{label} has changed from {remote_value} to {desired_value or 'unset'}"
    return None


def metadata_change(remote, policy):
    """Return why the remote attributes differ from policy, or None."""
    for label, remote_value, desired_value in (
        ("content-type", remote.content_type, policy.content_type),
        ("content-encoding", remote.content_encoding, policy.content_encoding),
        ("cache-control", remote.cache_control, policy.cache_control),
    ):
        reason = _changed(label, remote_value, desired_value)
        if reason:
            return reason

    if len(remote.metadata) != len(policy.metadata):
        return (
            f"count of metadata values has changed from {len(remote.metadata)} "
            f"to {len(policy.metadata)} for {remote.key}"
        )
    for key, value in policy.metadata.items():
        if key in remote.metadata and remote.metadata[key] != value:
            return f"metadata value of {key!r} has changed for {remote.key}"
    return None


def decide(local_path, policy, remote, fetch_grants):
    """Decide what to do with local_path given the remote snapshot.

    ``remote`` is None when the object does not exist. ``fetch_grants``
    is only called once everything else matches.
    """
    if remote is None:
        return Decision.upload("not found in bucket")

    if not same_content(local_etag(local_path), remote.etag):
        return Decision.upload("content has changed")

    reason = metadata_change(remote, policy)
    if reason:
        return Decision.update_metadata(reason)

    previous_acl = canned_acl_from_grants(fetch_grants())
    if previous_acl != policy.acl:
        return Decision.update_metadata(
            f"permissions for '{remote.key}' have changed "
            f"from '{previous_acl}' to '{policy.acl}'"
        )
    return Decision.skip()
