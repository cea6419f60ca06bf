from s3_deploy.decision import DecisionAction
from s3_deploy.decision import decide
from s3_deploy.interfaces import IJobRunner
from s3_deploy.plan import JobAction
from s3_deploy.policy import PolicyResolver
from zope.interface import implementer

import logging
import os


logger = logging.getLogger(__name__)


class SyncCancelledError(Exception):
    """The run was cancelled before the job could finish."""


@implementer(IJobRunner)
class JobRunner:
    """Executes planned jobs against the object store and the CDN.

    In dry-run mode every decision is still computed and logged, but no
    call that changes the bucket or the CDN is made.
    """

    def __init__(self, store, resolver, source, cdn=None, dry_run=False):
        self._store = store
        self._resolver = resolver
        self._source = source
        self._cdn = cdn
        self.dry_run = dry_run
        self._actions = {
            JobAction.UPLOAD: self.upload,
            JobAction.REDIRECT: self.redirect,
            JobAction.DELETE: self.delete,
            JobAction.INVALIDATE: self.invalidate,
        }

    @classmethod
    def from_config(cls, config, store, cdn=None):
        return cls(
            store,
            PolicyResolver.from_config(config),
            config.source,
            cdn=cdn,
            dry_run=config.dry_run,
        )

    def run(self, job, is_cancelled=lambda: False):
        try:
            action = self._actions[job.action]
        except KeyError:
            raise ValueError(f"unknown job action: {job.action!r}") from None
        return action(job, is_cancelled)

    @staticmethod
    def _check(is_cancelled):
        if is_cancelled():
            raise SyncCancelledError("synchronization cancelled")

    def upload(self, job, is_cancelled):
        rel_path = os.path.relpath(job.local, self._source).replace(os.sep, "/")
        policy = self._resolver.resolve(rel_path)

        self._check(is_cancelled)
        remote = self._store.head_object(job.remote)

        def fetch_grants():
            self._check(is_cancelled)
            return self._store.get_object_acl(job.remote)

        decision = decide(job.local, policy, remote, fetch_grants)

        if decision.action is DecisionAction.SKIP:
            logger.debug("skipping '%s' because %s", job.local, decision.reason)
            return decision

        if decision.action is DecisionAction.UPDATE_METADATA:
            logger.debug("updating metadata for '%s': %s", job.local, decision.reason)
            if not self.dry_run:
                self._check(is_cancelled)
                self._store.copy_object(job.remote, policy)
            return decision

        logger.debug(
            "uploading '%s' (%s) with content-type '%s' and permissions '%s'",
            job.local,
            decision.reason,
            policy.content_type,
            policy.acl,
        )
        if not self.dry_run:
            self._check(is_cancelled)
            self._store.put_object(job.remote, job.local, policy)
        return decision

    def redirect(self, job, is_cancelled):
        logger.debug("adding redirect from '%s' to '%s'", job.local, job.remote)
        if not self.dry_run:
            self._check(is_cancelled)
            self._store.put_redirect(job.local, job.remote)

    def delete(self, job, is_cancelled):
        logger.debug("removing remote file '%s'", job.remote)
        if not self.dry_run:
            self._check(is_cancelled)
            self._store.delete_object(job.remote)

    def invalidate(self, job, is_cancelled):
        if self._cdn is None:
            raise ValueError("no CDN configured for invalidation")
        logger.debug("invalidating '%s'", job.remote)
        if not self.dry_run:
            self._check(is_cancelled)
            self._cdn.invalidate(job.remote)
