import io
import logging
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from registry.errors import ComposeError

logger = logging.getLogger(__name__)

JPEG_QUALITY = 90
FALLBACK_HEIGHT = 1000


def scaled_width(size: Tuple[int, int], target_height: int) -> int:
    """Width after scaling to ``target_height``, rounded half up and never below 1."""
    width, height = size
    height = height or target_height
    width = width or target_height
    return max(1, int(width * target_height / height + 0.5))


class DocumentComposer:
    """Merges the front and back captures of a card into one side-by-side JPEG."""

    def __init__(self, quality: int = JPEG_QUALITY):
        self.quality = quality

    @staticmethod
    def _decode(data: bytes, label: str) -> Image.Image:
        if not data:
            raise ComposeError(f"No {label} image supplied", field=label)
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise ComposeError(f"Failed to load {label} image", field=label) from exc
        return image.convert("RGB")

    def combine(self, front: bytes, back: bytes) -> bytes:
        front_img = self._decode(front, "front")
        back_img = self._decode(back, "back")

        target_height = max(front_img.height, back_img.height) or FALLBACK_HEIGHT
        front_width = scaled_width(front_img.size, target_height)
        back_width = scaled_width(back_img.size, target_height)

        canvas = Image.new("RGB", (front_width + back_width, target_height), "white")
        canvas.paste(front_img.resize((front_width, target_height), Image.Resampling.LANCZOS), (0, 0))
        canvas.paste(back_img.resize((back_width, target_height), Image.Resampling.LANCZOS), (front_width, 0))

        out = io.BytesIO()
        canvas.save(out, format="JPEG", quality=self.quality)
        logger.debug("Composed %dx%d document image", canvas.width, canvas.height)
        return out.getvalue()
