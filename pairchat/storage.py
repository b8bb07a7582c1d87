import logging
import os
import time

logger = logging.getLogger(__name__)


class UploadStore:
    """
    Writes uploaded files under one directory as ``<epoch-ms>-<basename>``.

    Usage:
        store = UploadStore("./uploads")
        name = store.save("notes.txt", b"...")   # -> "1718000000000-notes.txt"
    """

    def __init__(self, directory: str):
        self.directory = directory

    def ensure_dir(self):
        os.makedirs(self.directory, exist_ok=True)

    def stored_name(self, filename: str) -> str:
        # never let a client pick the directory
        base = os.path.basename(filename.replace("\\", "/").replace("\x00", "")) or "upload"
        return f"{int(time.time() * 1000)}-{base}"

    def save(self, filename: str, data: bytes) -> str:
        """Write ``data`` and return the stored file name. Raises OSError or ValueError on failure."""
        self.ensure_dir()
        name = self.stored_name(filename)
        path = os.path.join(self.directory, name)
        with open(path, "wb") as f:
            f.write(data)
        logger.info(f"Stored {len(data)} bytes as {path}")
        return name
