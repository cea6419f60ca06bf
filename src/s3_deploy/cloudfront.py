from botocore.config import Config
from botocore.exceptions import ClientError
from s3_deploy.interfaces import IContentDeliveryNetwork
from zope.interface import implementer

import boto3
import logging
import time


logger = logging.getLogger(__name__)


class CloudFrontOperationError(Exception):
    """Wraps boto3 ClientError raised by CloudFront calls."""


def caller_reference():
    """Return a reference unique per call so invalidations are never merged."""
    return str(time.time_ns())


@implementer(IContentDeliveryNetwork)
class CloudFrontClient:
    """Invalidates paths of a single CloudFront distribution."""

    def __init__(
        self,
        distribution_id,
        region_name=None,
        aws_access_key_id=None,
        aws_secret_access_key=None,
        connect_timeout=60,
        read_timeout=60,
        session=None,
    ):
        self.distribution_id = distribution_id

        kwargs = {
            "config": Config(connect_timeout=connect_timeout, read_timeout=read_timeout)
        }
        if region_name:
            kwargs["region_name"] = region_name
        if aws_access_key_id and aws_secret_access_key:
            kwargs["aws_access_key_id"] = aws_access_key_id
            kwargs["aws_secret_access_key"] = aws_secret_access_key

        self._client = (session or boto3).client("cloudfront", **kwargs)

    def invalidate(self, path):
        logger.debug("invalidating '%s' on %s", path, self.distribution_id)
        try:
            self._client.create_invalidation(
                DistributionId=self.distribution_id,
                InvalidationBatch={
                    "CallerReference": caller_reference(),
                    "Paths": {"Quantity": 1, "Items": [path]},
                },
            )
        except ClientError as e:
            logger.debug("CloudFront invalidation of %s failed: %s", path, e)
            raise CloudFrontOperationError(
                f"CloudFront invalidation failed for path={path}: "
                f"{e.response['Error'].get('Code', 'Unknown')}"
            ) from e
