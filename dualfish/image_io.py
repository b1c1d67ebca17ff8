"""
Image I/O utilities using PIL (Pillow).

Reading always yields RGBA arrays for the stitcher; writing applies the
export-time transforms (180 degree turn, downscale, background fill for
formats without alpha), which are not part of the projection math.
"""

import os

import numpy as np
from PIL import Image


FORMATS = {
    'png': ('PNG', '.png'),
    'jpeg': ('JPEG', '.jpg'),
    'jpg': ('JPEG', '.jpg'),
}


def to_rgba(image):
    """
    Promote a grayscale, RGB or RGBA array to uint8 RGBA.

    Args:
        image: Image as numpy array (H x W), (H x W x 3) or (H x W x 4)

    Returns:
        uint8 array (H x W x 4); a new array unless the input already is one
    """
    image = np.asarray(image)
    if image.dtype != np.uint8:
        image = np.clip(image, 0, 255).astype(np.uint8)

    if image.ndim == 2:
        image = np.stack([image, image, image], axis=2)

    if image.ndim != 3 or image.shape[2] not in (3, 4):
        raise ValueError(f"Unsupported image shape {image.shape}")

    if image.shape[2] == 3:
        alpha = np.full(image.shape[:2] + (1,), 255, dtype=np.uint8)
        image = np.concatenate([image, alpha], axis=2)

    return image


def read_image(filepath):
    """
    Read a dual-fisheye image from file.

    Args:
        filepath: Path to image file

    Returns:
        Image as uint8 RGBA numpy array (H x W x 4)
    """
    try:
        img = Image.open(filepath)
        img = img.convert('RGBA')
        return np.array(img)

    except Exception as e:
        raise IOError(f"Failed to read image from {filepath}: {str(e)}")


def prepare_export(image, scale=1.0, rotate_180=False, background=None):
    """
    Apply export-time transforms to a panorama.

    Args:
        image: RGBA or RGB image as numpy array
        scale: Downscale factor; the result is at least 1x1
        rotate_180: Turn the image by 180 degrees
        background: RGB fill color composited under the alpha channel,
            or None to keep alpha

    Returns:
        PIL Image (RGBA, or RGB when a background is given)
    """
    if scale <= 0:
        raise ValueError(f"Export scale must be positive, got {scale}")

    img = Image.fromarray(to_rgba(image))

    if rotate_180:
        img = img.transpose(Image.Transpose.ROTATE_180)

    if scale != 1.0:
        new_size = (max(1, int(round(img.width * scale))),
                    max(1, int(round(img.height * scale))))
        img = img.resize(new_size, Image.LANCZOS)

    if background is not None:
        canvas = Image.new('RGB', img.size, tuple(background))
        canvas.paste(img, mask=img.getchannel('A'))
        img = canvas

    return img


def write_image(filepath, image, fmt=None, quality=0.92, scale=1.0, rotate_180=False):
    """
    Write a panorama to file.

    Args:
        filepath: Path to save image
        image: Image as numpy array
        fmt: 'png' or 'jpeg'; guessed from the file extension when None
        quality: JPEG quality in (0, 1]
        scale: Export downscale factor
        rotate_180: Turn the image by 180 degrees before saving

    Returns:
        (width, height) of the saved image
    """
    if fmt is None:
        ext = os.path.splitext(filepath)[1].lower().lstrip('.')
        fmt = ext if ext in FORMATS else 'png'
    if fmt not in FORMATS:
        raise ValueError(f"Unsupported export format {fmt!r}")
    if not 0.0 < quality <= 1.0:
        raise ValueError(f"JPEG quality must be in (0, 1], got {quality}")

    pil_format = FORMATS[fmt][0]

    try:
        # JPEG has no alpha; fill white to avoid black/transparent areas.
        background = (255, 255, 255) if pil_format == 'JPEG' else None
        img = prepare_export(image, scale=scale, rotate_180=rotate_180,
                             background=background)

        if pil_format == 'JPEG':
            img.save(filepath, format='JPEG', quality=int(round(quality * 100)))
        else:
            img.save(filepath, format='PNG')

    except Exception as e:
        raise IOError(f"Failed to write image to {filepath}: {str(e)}")

    return img.size


def export_filename(base_name, fmt='png', scale=1.0):
    """
    Default file name for an exported panorama.

    'room' -> 'room-stitched.png'; a downscaled JPEG gets a percentage
    suffix: 'room-stitched-50pct.jpg'.
    """
    base_name = os.path.splitext(os.path.basename(base_name))[0] or 'panorama'
    ext = FORMATS[fmt][1]
    suffix = ''
    if FORMATS[fmt][0] == 'JPEG' and scale != 1.0:
        suffix = f"-{int(round(scale * 100))}pct"
    return f"{base_name}-stitched{suffix}{ext}"
