from __future__ import annotations

import mimetypes
import uuid

from flask import Blueprint, abort, current_app, g, jsonify, request, send_file

from app.blog.constants import ALLOWED_IMAGE_TYPES
from app.blog.models import ROLE_WRITER
from app.blog.rbac import require_role
from app.blog.storage import LocalStorage, StorageError, storage_from_config

bp = Blueprint("media", __name__)

UPLOAD_PREFIX = "uploads"


@bp.post("/api/upload")
@require_role(ROLE_WRITER)
def upload_image():
    f = request.files.get("file")
    if not f or not f.filename:
        return jsonify({"error": "No file uploaded"}), 400

    content_type = (f.mimetype or "").lower()
    ext = ALLOWED_IMAGE_TYPES.get(content_type)
    if ext is None:
        return jsonify({"error": "Invalid file type. Only JPEG, PNG, GIF, and WebP are allowed."}), 400

    data = f.read()
    max_bytes = int(current_app.config.get("UPLOAD_MAX_BYTES") or 5 * 1024 * 1024)
    if len(data) > max_bytes:
        return jsonify({"error": f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB."}), 400

    filename = f"{uuid.uuid4()}{ext}"
    key = f"{UPLOAD_PREFIX}/{filename}"
    storage = storage_from_config(current_app.config)
    try:
        storage.put_bytes(key, data, content_type=content_type)
    except StorageError as e:
        current_app.logger.error("Upload failed (request_id=%s): %s", g.request_id, e)
        return jsonify({"error": "Failed to save file."}), 500

    current_app.logger.info("Stored upload %s (%s bytes) for %s", key, len(data), g.current_user.clerk_id)
    return jsonify({"url": storage.public_url(key), "filename": filename, "size": len(data), "type": content_type})


@bp.get("/uploads/<path:filename>")
def uploaded_file(filename: str):
    storage = storage_from_config(current_app.config)
    # S3 uploads are served by the bucket itself.
    if not isinstance(storage, LocalStorage):
        abort(404)
    key = f"{UPLOAD_PREFIX}/{filename}"
    if not storage.exists(key):
        abort(404)
    mimetype = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return send_file(storage.open(key), mimetype=mimetype, max_age=3600)
