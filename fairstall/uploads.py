import os
from typing import Optional

from werkzeug.utils import secure_filename
from flask import current_app

ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png", "webp"}

def _allowed(filename: str) -> bool:
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS

def _fabric_folder() -> str:
    return os.path.join(current_app.config["UPLOAD_FOLDER"], "fabrics")

def _stem(fabric_id: str) -> str:
    stem = secure_filename(str(fabric_id))
    if not stem:
        raise ValueError("Invalid fabric id for an image")
    return stem

def find_fabric_image(fabric_id: str) -> Optional[str]:
    folder = _fabric_folder()
    stem = _stem(fabric_id)
    for ext in sorted(ALLOWED_EXTENSIONS):
        path = os.path.join(folder, f"{stem}.{ext}")
        if os.path.exists(path):
            return path
    return None

def delete_fabric_image(fabric_id: str) -> bool:
    path = find_fabric_image(fabric_id)
    if not path:
        return False
    os.remove(path)
    return True

def save_fabric_image(file_storage, fabric_id: str) -> str:
    """
    Stores the image as <UPLOAD_FOLDER>/fabrics/<fabric_id>.<ext>,
    replacing any earlier image of the same fabric. Returns the file path.
    """
    if not file_storage or not getattr(file_storage, "filename", ""):
        raise ValueError("No image file was sent")

    filename = secure_filename(file_storage.filename)
    if not _allowed(filename):
        raise ValueError("Unsupported file type (jpg, jpeg, png, webp)")

    ext = filename.rsplit(".", 1)[1].lower()
    delete_fabric_image(fabric_id)

    folder = _fabric_folder()
    os.makedirs(folder, exist_ok=True)

    abs_path = os.path.join(folder, f"{_stem(fabric_id)}.{ext}")
    file_storage.save(abs_path)
    return abs_path
