from dataclasses import dataclass
from dataclasses import field

import fnmatch
import mimetypes
import posixpath


DEFAULT_ACL = "private"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

# mimetypes treats these suffixes as encodings and reports no type for them
COMPRESSED_TYPES = {
    ".gz": "application/gzip",
    ".tgz": "application/gzip",
    ".bz2": "application/x-bzip2",
    ".xz": "application/x-xz",
}


@dataclass(frozen=True)
class UploadPolicy:
    """Attributes an object should carry once synchronized.

    ``None`` means the attribute is left unset on the object.
    """

    acl: str = DEFAULT_ACL
    content_type: str = DEFAULT_CONTENT_TYPE
    content_encoding: str = None
    cache_control: str = None
    metadata: dict = field(default_factory=dict)


def ordered_patterns(patterns):
    """Return (pattern, value) pairs, most specific pattern first.

    Longer patterns are tried before shorter ones. Patterns of equal
    length keep the order in which they were configured.
    """
    indexed = list(enumerate((patterns or {}).items()))
    indexed.sort(key=lambda item: (-len(item[1][0]), item[0]))
    return [pair for _index, pair in indexed]


class PolicyResolver:
    """Resolves the UploadPolicy of a file from the configured maps.

    ACL, cache-control and metadata are matched by glob against the path
    relative to the source root. Content-type and content-encoding are
    looked up by file extension.
    """

    def __init__(
        self,
        acl=None,
        content_type=None,
        content_encoding=None,
        cache_control=None,
        metadata=None,
    ):
        self._acl = ordered_patterns(acl)
        self._content_type = dict(content_type or {})
        self._content_encoding = dict(content_encoding or {})
        self._cache_control = ordered_patterns(cache_control)
        self._metadata = ordered_patterns(metadata)

    @classmethod
    def from_config(cls, config):
        return cls(
            acl=config.acl,
            content_type=config.content_type,
            content_encoding=config.content_encoding,
            cache_control=config.cache_control,
            metadata=config.metadata,
        )

    def resolve(self, rel_path):
        rel_path = rel_path.replace("\\", "/").lstrip("/")
        _root, ext = posixpath.splitext(rel_path)
        metadata = self._first_match(rel_path, self._metadata) or {}
        return UploadPolicy(
            acl=self._first_match(rel_path, self._acl) or DEFAULT_ACL,
            content_type=self._content_type_for(ext),
            content_encoding=self._content_encoding.get(ext) or None,
            cache_control=self._first_match(rel_path, self._cache_control) or None,
            # S3 hands user metadata back with lower-cased keys
            metadata={k.lower(): v for k, v in metadata.items()},
        )

    def _content_type_for(self, ext):
        """Look up the type of the last extension only."""
        if ext in self._content_type:
            return self._content_type[ext]
        if ext.lower() in COMPRESSED_TYPES:
            return COMPRESSED_TYPES[ext.lower()]
        guessed, _encoding = mimetypes.guess_type("file" + ext, strict=False)
        return guessed or DEFAULT_CONTENT_TYPE

    @staticmethod
    def _first_match(rel_path, ordered):
        for pattern, value in ordered:
            if fnmatch.fnmatchcase(rel_path, pattern.lstrip("/")):
                return value
        return None
