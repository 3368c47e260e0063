# services/uploads.py
"""
Local image uploads (profile pictures, blog images)
"""

import os
import uuid
import logging
from typing import Any, Dict

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)


class UploadError(Exception):
    """Rejected upload; the message is safe to return to clients"""
    pass


def allowed_image(filename: str, mimetype: str = None) -> bool:
    extension = os.path.splitext(filename or '')[1].lower()
    allowed = current_app.config.get('ALLOWED_IMAGE_EXTENSIONS', {'.png', '.jpg', '.jpeg', '.gif', '.webp'})
    if extension not in allowed:
        return False
    return mimetype is None or mimetype.startswith('image/')


def save_image_upload(file: FileStorage, prefix: str = 'image') -> Dict[str, Any]:
    """
    Store an uploaded image under UPLOAD_FOLDER

    Args:
        file: Uploaded file from request.files
        prefix: Prefix for the stored filename

    Returns:
        Dict with success, imageUrl, filename, originalName and size

    Raises:
        UploadError: Missing file, not an image or too large
    """
    if file is None or not file.filename:
        raise UploadError('No file uploaded')

    original_name = file.filename
    if not allowed_image(original_name, file.mimetype):
        raise UploadError('Only image files are allowed')

    file.stream.seek(0, os.SEEK_END)
    size = file.stream.tell()
    file.stream.seek(0)
    max_size = current_app.config.get('MAX_IMAGE_SIZE', 5 * 1024 * 1024)
    if size > max_size:
        raise UploadError(f"File too large (max {max_size // (1024 * 1024)}MB)")

    extension = os.path.splitext(secure_filename(original_name))[1].lower()
    filename = f"{prefix}-{uuid.uuid4().hex}{extension}"
    upload_folder = current_app.config['UPLOAD_FOLDER']
    os.makedirs(upload_folder, exist_ok=True)
    file.save(os.path.join(upload_folder, filename))

    logger.info(f"Stored upload {original_name} as {filename} ({size} bytes)")
    return {
        'success': True,
        'imageUrl': f"/uploads/{filename}",
        'filename': filename,
        'originalName': original_name,
        'size': size,
    }
