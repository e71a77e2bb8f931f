from __future__ import annotations
from pathlib import Path
from typing import Union
import base64
import io
from PIL import Image, UnidentifiedImageError


def to_base64(image_data: Union[str, Path, bytes, Image.Image]) -> str:
    if isinstance(image_data, bytes):
        return base64.b64encode(image_data).decode('utf-8')

    if isinstance(image_data, (str, Path)):
        path = Path(image_data)
        if not path.exists():
            raise FileNotFoundError(f"Image file not found: {image_data}")
        return base64.b64encode(path.read_bytes()).decode('utf-8')

    if isinstance(image_data, Image.Image):
        if image_data.mode in ('RGBA', 'P'):
            image_data = image_data.convert('RGB')

        buffer = io.BytesIO()
        image_data.save(buffer, format='PNG')
        return base64.b64encode(buffer.getvalue()).decode('utf-8')

    raise ValueError(f"Unsupported image data type: {type(image_data)}")


def load_image(image_bytes: bytes) -> Image.Image:
    """Decode uploaded bytes into an RGB PIL image."""
    try:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Not a decodable image: {e}") from e
    if img.mode != 'RGB':
        img = img.convert('RGB')
    return img


def is_image_mime(mime_type: str | None) -> bool:
    if not mime_type:
        return False
    return mime_type.split(";", 1)[0].strip().lower().startswith("image/")
