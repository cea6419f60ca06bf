from zope.interface import Attribute
from zope.interface import Interface


class IObjectStore(Interface):
    """Abstraction over an S3-compatible bucket."""

    bucket_name = Attribute("Name of the bucket all keys refer to.")

    def head_object(key):
        """Return a RemoteObject for the key, or None if not found."""

    def put_object(key, local_path, policy):
        """Upload a local file with the attributes of an UploadPolicy."""

    def put_redirect(key, location):
        """Create a public, empty object redirecting to location."""

    def copy_object(key, policy):
        """Replace the metadata of an object in place without re-upload."""

    def get_object_acl(key):
        """Return the list of Grants attached to an object."""

    def list_objects(prefix):
        """Return all keys below prefix, following pagination markers."""

    def delete_object(key):
        """Delete an object."""


class IContentDeliveryNetwork(Interface):
    """A CDN in front of the bucket."""

    def invalidate(path):
        """Purge cached copies of the objects matching path."""


class IJobRunner(Interface):
    """Executes a single planned job."""

    def run(job, is_cancelled):
        """Execute job, calling is_cancelled() before each remote call."""
