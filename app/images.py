import asyncio
import io
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from domain.errors import ImageArchiveError


WIDTH = 800
REJECTED_DIR = "NoneFoodImages"
FORMATS = {".jpeg": "JPEG", ".jpg": "JPEG", ".png": "PNG"}


def resize_image(image_bytes: bytes, extension: str, width: int = WIDTH) -> tuple[bytes, str]:
    """Resize to `width`, keeping the aspect ratio. Returns (bytes, extension)."""
    try:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise ImageArchiveError(f"Failed to decode image. {e}") from e

    extension = extension.lower() or f".{(img.format or 'png').lower()}"
    fmt = FORMATS.get(extension)
    if fmt is None:
        raise ImageArchiveError(f"Unsupported image format: {extension}")

    height = max(1, round(img.height * width / img.width))
    buffer = io.BytesIO()
    try:
        img = img.resize((width, height), Image.Resampling.LANCZOS)
        if fmt == "JPEG" and img.mode not in ("RGB", "L"):
            img = img.convert("RGB")
        img.save(buffer, format=fmt)
    except (OSError, ValueError) as e:
        raise ImageArchiveError(f"Failed to resize image. {e}") from e
    return buffer.getvalue(), extension


class ImageArchive:
    """Resized copies of uploaded images on local disk, named by fingerprint."""

    def __init__(self, images_dir: Path) -> None:
        self.images_dir = images_dir

    async def save(self, image_bytes: bytes, fingerprint: str, extension: str = "") -> str:
        return await asyncio.to_thread(
            self._write, self.images_dir, image_bytes, fingerprint, extension
        )

    async def save_rejected(
        self, image_bytes: bytes, fingerprint: str, extension: str = ""
    ) -> str:
        return await asyncio.to_thread(
            self._write, self.images_dir / REJECTED_DIR, image_bytes, fingerprint, extension
        )

    def _write(
        self, directory: Path, image_bytes: bytes, fingerprint: str, extension: str
    ) -> str:
        data, extension = resize_image(image_bytes, extension)
        path = directory / f"{fingerprint}{extension}"
        try:
            directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise ImageArchiveError(f"Failed to save image {path}. {e}") from e
        return str(path)
