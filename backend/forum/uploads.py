"""
Post media storage.

Files go through Django's default storage under MEDIA_ROOT with a uuid
filename; the stored reference is the public path `/uploads/<name>`.
The file content itself is never inspected.
"""
import logging
import uuid
from pathlib import Path

from django.conf import settings
from django.core.files.storage import default_storage

from .exceptions import InvalidInputError
from .models import MAX_POST_IMAGES, MAX_POST_VIDEOS

logger = logging.getLogger(__name__)

ALLOWED_MEDIA_PREFIXES = ('image/', 'video/')


def generate_uuid_filename(original_filename: str) -> str:
    """Keep the extension, replace the name."""
    return f"{uuid.uuid4()}{Path(original_filename or '').suffix.lower()}"


def validate_upload(file, allowed=ALLOWED_MEDIA_PREFIXES) -> None:
    content_type = getattr(file, 'content_type', '') or ''
    if not content_type.startswith(allowed):
        raise InvalidInputError('Only image and video files are allowed')
    if file.size > settings.MAX_UPLOAD_SIZE:
        raise InvalidInputError(
            f"File {file.name} exceeds the {settings.MAX_UPLOAD_SIZE // (1024 * 1024)}MB limit"
        )


def store_upload(file) -> str:
    """Save one uploaded file and return its public reference."""
    validate_upload(file)
    name = default_storage.save(generate_uuid_filename(file.name), file)
    logger.info(f"Stored upload {file.name} as {name}")
    return f"{settings.MEDIA_URL.rstrip('/')}/{name}"


def store_post_media(images, videos) -> tuple[list[str], list[str]]:
    """
    Store the images and videos attached to a new post.

    Counts are checked before anything is written.
    """
    images = list(images or [])
    videos = list(videos or [])
    if len(images) > MAX_POST_IMAGES:
        raise InvalidInputError(f"At most {MAX_POST_IMAGES} images per post")
    if len(videos) > MAX_POST_VIDEOS:
        raise InvalidInputError(f"At most {MAX_POST_VIDEOS} videos per post")
    for file in images:
        validate_upload(file, allowed='image/')
    for file in videos:
        validate_upload(file, allowed='video/')

    image_urls = [store_upload(file) for file in images]
    video_urls = [store_upload(file) for file in videos]
    return image_urls, video_urls
