import logging

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

from config import Settings
from errors import UploadError

logger = logging.getLogger(__name__)


class ImageUploader:
    """Pushes product images to Cloudinary and hands back their public URL."""

    def __init__(self, settings: Settings):
        self.configured = settings.cloudinary_configured
        if self.configured:
            cloudinary.config(
                cloud_name=settings.cloudinary_cloud_name,
                api_key=settings.cloudinary_api_key,
                api_secret=settings.cloudinary_api_secret,
                secure=True,
            )
        else:
            logger.warning("Cloudinary credentials not set; image uploads are disabled")

    def upload(self, data: bytes, content_type: str) -> str:
        if not self.configured:
            raise UploadError("Image upload failed: storage is not configured")
        try:
            result = cloudinary.uploader.upload(data, resource_type="image", context={"content_type": content_type})
        except CloudinaryError as e:
            logger.error("Cloudinary upload failed: %s", e)
            raise UploadError(f"Image upload failed: {e}") from e

        url = (result or {}).get("secure_url")
        if not url:
            logger.error("Cloudinary upload of %s returned no URL", content_type)
            raise UploadError("Image upload failed: Unknown error")
        return url
