# backend/uploads.py
import os
import shutil
import uuid
from typing import BinaryIO, Optional

from backend.config import Settings
from backend.errors import StoreError


class UploadStore:
    """
    Writes an uploaded file under the upload directory with a random name and
    returns that name as the requirement's file reference. File contents are
    never inspected.
    """

    def __init__(self, settings: Settings):
        self.upload_dir = settings.upload_dir

    def save(self, stream: Optional[BinaryIO], filename: Optional[str]) -> Optional[str]:
        if stream is None or not filename:
            return None
        reference = uuid.uuid4().hex
        path = os.path.join(self.upload_dir, reference)
        try:
            os.makedirs(self.upload_dir, exist_ok=True)
            with open(path, "wb") as out:
                shutil.copyfileobj(stream, out)
        except OSError as e:
            raise StoreError(detail=f"upload write failed: {e}") from e
        return reference
