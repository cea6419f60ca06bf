"""Command line entry point.

Every option can also be given through ``PLUGIN_*`` environment
variables so the command runs unchanged as a CI pipeline step.
"""

from s3_deploy.cloudfront import CloudFrontOperationError
from s3_deploy.config import ChecksumMode
from s3_deploy.config import ConfigurationError
from s3_deploy.config import DEFAULT_MAX_CONCURRENCY
from s3_deploy.config import DEFAULT_REGION
from s3_deploy.config import SyncConfig
from s3_deploy.config import parse_deep_string_map
from s3_deploy.config import parse_redirects
from s3_deploy.config import parse_string_map
from s3_deploy.plan import EmptySourceError
from s3_deploy.plan import JobAction
from s3_deploy.plan import SourceNotFoundError
from s3_deploy.plan import SourceReadError
from s3_deploy.plan import build_plan
from s3_deploy.runner import JobRunner
from s3_deploy.runner import SyncCancelledError
from s3_deploy.s3client import S3OperationError
from s3_deploy.scheduler import JobFailedError
from s3_deploy.scheduler import JobScheduler

import click
import logging
import threading


logger = logging.getLogger(__name__)

SYNC_ERRORS = (
    ConfigurationError,
    EmptySourceError,
    SourceNotFoundError,
    SourceReadError,
    S3OperationError,
    CloudFrontOperationError,
    JobFailedError,
    SyncCancelledError,
)


class JSONMapParamType(click.ParamType):
    """A JSON object given on the command line or in the environment."""

    name = "json"

    def __init__(self, parser):
        self._parser = parser

    def convert(self, value, param, ctx):
        if isinstance(value, dict):
            return value
        try:
            return self._parser(value, param.name if param else "value")
        except ConfigurationError as e:
            self.fail(str(e), param, ctx)


class ChecksumModeParamType(click.ParamType):
    name = "mode"

    def convert(self, value, param, ctx):
        try:
            return ChecksumMode.parse(value)
        except ConfigurationError as e:
            self.fail(str(e), param, ctx)


@click.command(context_settings={"show_default": True})
@click.option(
    "--endpoint",
    envvar=["PLUGIN_ENDPOINT", "S3_ENDPOINT"],
    help="Endpoint of an S3-compatible store.",
)
@click.option(
    "--access-key",
    envvar=["PLUGIN_ACCESS_KEY", "S3_ACCESS_KEY"],
    help="S3 access key.",
)
@click.option(
    "--secret-key",
    envvar=["PLUGIN_SECRET_KEY", "S3_SECRET_KEY"],
    help="S3 secret key.",
)
@click.option(
    "--bucket", envvar="PLUGIN_BUCKET", required=True, help="Name of the bucket."
)
@click.option(
    "--region", envvar="PLUGIN_REGION", default=DEFAULT_REGION, help="S3 region."
)
@click.option(
    "--source", envvar="PLUGIN_SOURCE", default=".", help="Local directory to upload."
)
@click.option(
    "--target", envvar="PLUGIN_TARGET", default="/", help="Key prefix to upload to."
)
@click.option(
    "--delete",
    envvar="PLUGIN_DELETE",
    is_flag=True,
    help="Delete remote files that no longer exist locally.",
)
@click.option(
    "--acl",
    envvar="PLUGIN_ACL",
    default="{}",
    type=JSONMapParamType(parse_string_map),
    help="Canned ACL per glob pattern.",
)
@click.option(
    "--content-type",
    envvar="PLUGIN_CONTENT_TYPE",
    default="{}",
    type=JSONMapParamType(parse_string_map),
    help="Content-type per file extension.",
)
@click.option(
    "--content-encoding",
    envvar="PLUGIN_CONTENT_ENCODING",
    default="{}",
    type=JSONMapParamType(parse_string_map),
    help="Content-encoding per file extension.",
)
@click.option(
    "--cache-control",
    envvar="PLUGIN_CACHE_CONTROL",
    default="{}",
    type=JSONMapParamType(parse_string_map),
    help="Cache-control per glob pattern.",
)
@click.option(
    "--metadata",
    envvar="PLUGIN_METADATA",
    default="{}",
    type=JSONMapParamType(parse_deep_string_map),
    help="Additional metadata per glob pattern.",
)
@click.option(
    "--redirects",
    envvar="PLUGIN_REDIRECTS",
    default="{}",
    type=JSONMapParamType(parse_redirects),
    help="Redirects to create, path to location.",
)
@click.option(
    "--cloudfront-distribution",
    envvar="PLUGIN_CLOUDFRONT_DISTRIBUTION",
    help="ID of the CloudFront distribution to invalidate.",
)
@click.option(
    "--dry-run",
    envvar=["DRY_RUN", "PLUGIN_DRY_RUN"],
    is_flag=True,
    help="Log what would change without calling mutating APIs.",
)
@click.option(
    "--path-style",
    envvar="PLUGIN_PATH_STYLE",
    is_flag=True,
    help="Use path style bucket addressing.",
)
@click.option(
    "--allow-empty-source",
    envvar="PLUGIN_ALLOW_EMPTY_SOURCE",
    is_flag=True,
    help="Do not fail on an empty source directory.",
)
@click.option(
    "--checksum-calculation",
    envvar="PLUGIN_CHECKSUM_CALCULATION",
    default=ChecksumMode.REQUIRED.value,
    type=ChecksumModeParamType(),
    help="Checksum calculation mode (supported or required).",
)
@click.option(
    "--max-concurrency",
    envvar="PLUGIN_MAX_CONCURRENCY",
    default=DEFAULT_MAX_CONCURRENCY,
    type=click.IntRange(min=1),
    help="Number of files processed concurrently.",
)
@click.option(
    "--timeout",
    envvar="PLUGIN_TIMEOUT",
    type=click.FloatRange(min=0),
    help="Cancel the run after this many seconds.",
)
@click.option(
    "--log-level",
    envvar="PLUGIN_LOG_LEVEL",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity.",
)
def main(timeout, log_level, **settings):
    """Synchronize a local directory with an S3 bucket."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = SyncConfig.create(**settings)
        sync(config, timeout=timeout)
    except SYNC_ERRORS as e:
        raise click.ClickException(str(e)) from e


def sync(config, timeout=None, clients=None):
    """Plan and run a synchronization; ``clients`` overrides config.open()."""
    store, cdn = clients if clients is not None else config.open()

    if config.dry_run:
        logger.warning("dry run enabled, no changes will be made")

    scheduler = JobScheduler(
        JobRunner.from_config(config, store, cdn),
        max_concurrency=config.max_concurrency,
    )

    # the timeout covers listing and planning as well as the jobs
    cancel = threading.Event()
    timer = None
    if timeout:
        timer = threading.Timer(timeout, cancel.set)
        timer.daemon = True
        timer.start()

    try:
        plan = build_plan(config, store)
        if cancel.is_set():
            raise SyncCancelledError("synchronization cancelled while planning")
        logger.info(
            "Synchronizing with bucket '%s': %d uploads, %d redirects, %d deletes",
            config.bucket,
            plan.count(JobAction.UPLOAD),
            plan.count(JobAction.REDIRECT),
            plan.count(JobAction.DELETE),
        )
        results = scheduler.run(plan, cancel=cancel)
    except KeyboardInterrupt:
        cancel.set()
        raise
    finally:
        if timer is not None:
            timer.cancel()

    logger.info("Synchronized %d jobs with bucket '%s'", len(results), config.bucket)
    return results
