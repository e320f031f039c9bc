import os
import uuid

from flask import current_app
from werkzeug.utils import secure_filename

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png"}
DOCUMENT_EXTENSIONS = IMAGE_EXTENSIONS | {"pdf", "doc", "docx"}

# form field -> (allowed extensions, User column)
UPLOAD_FIELDS = {
    "profileImage": (IMAGE_EXTENSIONS, "profile_image_url"),
    "identification": (DOCUMENT_EXTENSIONS, "identification_url"),
    "diploma": (DOCUMENT_EXTENSIONS, "diploma_url"),
}
DOCUMENT_FIELDS = ("identification", "diploma")


def _extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def check_files(files, fields=UPLOAD_FIELDS) -> list:
    errors = []
    for field in fields:
        f = files.get(field)
        if f is None or not f.filename:
            continue
        allowed, _ = UPLOAD_FIELDS[field]
        if _extension(f.filename) not in allowed:
            errors.append(f"{field} must be one of: " + ", ".join(sorted(allowed)))
    return errors


def save_upload(file_storage) -> str:
    """Store an uploaded file under a random name and return its public URL."""
    folder = current_app.config["UPLOAD_FOLDER"]
    os.makedirs(folder, exist_ok=True)
    name = f"{uuid.uuid4().hex}-{secure_filename(file_storage.filename)}"
    file_storage.save(os.path.join(folder, name))
    return f"/api/uploads/{name}"


def store_user_files(user, files, fields=UPLOAD_FIELDS) -> list:
    """Save each provided file onto its user column. Returns the stored field names."""
    stored = []
    for field in fields:
        f = files.get(field)
        if f is None or not f.filename:
            continue
        _, column = UPLOAD_FIELDS[field]
        setattr(user, column, save_upload(f))
        stored.append(field)
    return stored
