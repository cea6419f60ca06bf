from dataclasses import dataclass
from dataclasses import field
from enum import Enum

import logging
import os
import posixpath


logger = logging.getLogger(__name__)


class EmptySourceError(Exception):
    """The source directory holds no files."""


class SourceNotFoundError(Exception):
    """The source directory does not exist."""


class SourceReadError(Exception):
    """A directory below the source could not be listed."""


class JobAction(Enum):
    UPLOAD = "upload"
    REDIRECT = "redirect"
    DELETE = "delete"
    INVALIDATE = "invalidate"


@dataclass(frozen=True)
class Job:
    """One unit of work.

    ``local`` is the file path for uploads and the key of the redirect
    object for redirects, empty otherwise. ``remote`` is the object key,
    or the redirect location, or the invalidation path.
    """

    action: JobAction
    local: str
    remote: str


@dataclass
class Plan:
    jobs: list = field(default_factory=list)
    invalidation: Job = None

    def __len__(self):
        return len(self.jobs) + (1 if self.invalidation is not None else 0)

    def count(self, action):
        return sum(1 for job in self.jobs if job.action is action)


def remote_key(target, path):
    path = path.lstrip("/")
    return posixpath.join(target, path) if target else path


def relative_key(target, key):
    """Strip the target prefix from a listed key."""
    if target:
        return key[len(target) + 1 :] if key.startswith(target + "/") else key
    return key


def _raise_walk_error(e):
    raise SourceReadError(
        f"cannot read source directory {e.filename}: {e.strerror}"
    ) from e


def local_files(source):
    """Yield paths of files below source relative to it, sorted, using ``/``.

    An unreadable directory fails the walk instead of being skipped.
    """
    if not os.path.isdir(source):
        raise SourceNotFoundError(f"source directory does not exist: {source}")
    for dirpath, dirnames, filenames in os.walk(source, onerror=_raise_walk_error):
        dirnames.sort()
        for filename in sorted(filenames):
            path = os.path.join(dirpath, filename)
            if not os.path.isfile(path):
                continue
            yield os.path.relpath(path, source).replace(os.sep, "/")


def build_plan(config, store):
    """Build the synchronization plan for config against store."""
    target = config.target
    remote = store.list_objects(target + "/" if target else "")

    plan = Plan()
    local = set()

    for rel_path in local_files(config.source):
        local.add(rel_path)
        plan.jobs.append(
            Job(
                JobAction.UPLOAD,
                os.path.join(config.source, rel_path),
                remote_key(target, rel_path),
            )
        )

    if not local:
        if not config.allow_empty_source:
            raise EmptySourceError(f"source directory is empty: {config.source}")
        logger.warning("source directory is empty: %s", config.source)

    for path, location in config.redirects.items():
        path = path.lstrip("/")
        local.add(path)
        plan.jobs.append(
            Job(JobAction.REDIRECT, remote_key(target, path), location)
        )

    if config.delete:
        for key in remote:
            if relative_key(target, key) not in local:
                plan.jobs.append(Job(JobAction.DELETE, "", key))

    if config.cloudfront_distribution:
        plan.invalidation = Job(
            JobAction.INVALIDATE, "", posixpath.join("/", target, "*")
        )

    logger.debug(
        "planned %d uploads, %d redirects, %d deletes",
        plan.count(JobAction.UPLOAD),
        plan.count(JobAction.REDIRECT),
        plan.count(JobAction.DELETE),
    )
    return plan
