import io
from dataclasses import dataclass, field

from PIL import Image, ImageOps, UnidentifiedImageError

SUPPORTED_FORMATS = {"JPEG", "PNG", "WEBP"}
MIN_DIMENSION = 256
MAX_DIMENSION = 4096
MAX_MEGAPIXELS = 25


@dataclass(slots=True)
class ImageInfo:
    width: int
    height: int
    format: str
    size: int
    has_exif: bool


@dataclass(slots=True)
class ImageValidation:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    info: ImageInfo | None = None


def validate_image(data: bytes, max_bytes: int) -> ImageValidation:
    errors: list[str] = []
    if len(data) > max_bytes:
        errors.append(f"File size exceeds {max_bytes // (1024 * 1024)}MB limit")
    try:
        with Image.open(io.BytesIO(data)) as image:
            width, height = image.size
            fmt = (image.format or "").upper()
            has_exif = bool(image.getexif())
    except (UnidentifiedImageError, OSError):
        return ImageValidation(is_valid=False, errors=["Invalid image file"])

    if fmt not in SUPPORTED_FORMATS:
        errors.append("Unsupported format. Supported: jpeg, png, webp")
    if width < MIN_DIMENSION or height < MIN_DIMENSION:
        errors.append(f"Image too small. Minimum: {MIN_DIMENSION}x{MIN_DIMENSION}px")
    if width > MAX_DIMENSION or height > MAX_DIMENSION:
        errors.append(f"Image too large. Maximum: {MAX_DIMENSION}x{MAX_DIMENSION}px")
    if (width * height) / 1_000_000 > MAX_MEGAPIXELS:
        errors.append(f"Image resolution too high. Maximum: {MAX_MEGAPIXELS}MP")
    aspect = width / height
    if aspect > 3 or aspect < 0.33:
        errors.append("Image aspect ratio should be between 1:3 and 3:1")

    info = ImageInfo(width=width, height=height, format=fmt.lower(), size=len(data), has_exif=has_exif)
    return ImageValidation(is_valid=not errors, errors=errors, info=info)


def strip_exif_and_optimize(data: bytes) -> bytes:
    """Apply EXIF orientation, drop metadata and re-encode as progressive JPEG."""
    with Image.open(io.BytesIO(data)) as image:
        oriented = ImageOps.exif_transpose(image).convert("RGB")
    buffer = io.BytesIO()
    oriented.save(buffer, format="JPEG", quality=92, progressive=True)
    return buffer.getvalue()


def create_thumbnail(data: bytes, size: int = 300) -> bytes:
    with Image.open(io.BytesIO(data)) as image:
        thumb = ImageOps.fit(image.convert("RGB"), (size, size), centering=(0.5, 0.5))
    buffer = io.BytesIO()
    thumb.save(buffer, format="JPEG", quality=80)
    return buffer.getvalue()
