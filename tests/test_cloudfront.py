from botocore.exceptions import ClientError
from unittest import mock

import pytest
from moto import mock_aws

from s3_deploy.cloudfront import CloudFrontClient
from s3_deploy.cloudfront import CloudFrontOperationError
from s3_deploy.interfaces import IContentDeliveryNetwork


@pytest.fixture
def cdn():
    with mock_aws():
        client = CloudFrontClient("E123EXAMPLE", region_name="us-east-1")
        with mock.patch.object(client, "_client") as raw:
            yield client, raw


class TestCloudFrontClient:
    def test_interface_provided(self, cdn):
        client, _raw = cdn
        assert IContentDeliveryNetwork.providedBy(client)

    def test_invalidate_single_path(self, cdn):
        client, raw = cdn

        client.invalidate("/site/*")

        raw.create_invalidation.assert_called_once()
        kwargs = raw.create_invalidation.call_args.kwargs
        assert kwargs["DistributionId"] == "E123EXAMPLE"
        assert kwargs["InvalidationBatch"]["Paths"] == {
            "Quantity": 1,
            "Items": ["/site/*"],
        }

    def test_caller_reference_is_unique_per_call(self, cdn):
        client, raw = cdn

        with mock.patch("s3_deploy.cloudfront.time.time_ns", side_effect=[1, 2]):
            client.invalidate("/*")
            client.invalidate("/*")

        references = [
            c.kwargs["InvalidationBatch"]["CallerReference"]
            for c in raw.create_invalidation.call_args_list
        ]
        assert references == ["1", "2"]

    def test_client_error_is_wrapped(self, cdn):
        client, raw = cdn
        raw.create_invalidation.side_effect = ClientError(
            {"Error": {"Code": "NoSuchDistribution", "Message": "nope"}},
            "CreateInvalidation",
        )

        with pytest.raises(CloudFrontOperationError, match="NoSuchDistribution"):
            client.invalidate("/*")
