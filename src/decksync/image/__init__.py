"""Image pipeline: resources, loading, preloading and uploading.

Exports
-------
ImageResource
    Image bytes plus their upload state machine.
ImageLoader / ImageCache
    Load images from files and URLs, cached per process.
preload_current_images
    Load the images already on slides about to be updated.
UploadPipeline
    Bounded, detached uploads to temporary storage with cleanup.
sniff_mime / is_public_url
    Format detection and public URL check.
"""

from .detect import SUPPORTED_MIMES, is_public_url, sniff_mime
from .loader import ImageCache, ImageLoader, default_cache
from .preload import preload_current_images
from .resource import ImageResource
from .upload import UploadPipeline, images_to_upload

__all__ = [
    "SUPPORTED_MIMES",
    "ImageCache",
    "ImageLoader",
    "ImageResource",
    "UploadPipeline",
    "default_cache",
    "images_to_upload",
    "is_public_url",
    "preload_current_images",
    "sniff_mime",
]
