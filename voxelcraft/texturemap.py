"""Texture loading, GPU tiling and the block texture atlas."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from itertools import islice
from typing import Iterable

from PIL import Image

TEXTURE_MAPSIZE = 128
TEXTURE_TILESIZE = 16
TEXTURE_MAPTILES = TEXTURE_MAPSIZE // TEXTURE_TILESIZE
MIPMAP_LEVELS = 2

_BACKGROUND = b"\xff\x00\x00\x00"

log = logging.getLogger(__name__)


def djb_hash(name: str | os.PathLike) -> int:
    """The 32-bit djb2 hash of a file name."""
    h = 5381
    for c in os.fsencode(name):
        h = (h * 33 + c) & 0xFFFFFFFF
    return h


def _morton_interleave(x: int, y: int) -> int:
    i = (x & 7) | ((y & 7) << 8)
    i = (i ^ (i << 2)) & 0x1313
    i = (i ^ (i << 1)) & 0x1515
    return (i | (i >> 7)) & 0x3F


def morton_offset(x: int, y: int, bytes_per_pixel: int) -> int:
    """Byte offset of pixel ``(x, y)`` within its 8-pixel-high row of tiles."""
    return (_morton_interleave(x, y) + (x & ~7) * 8) * bytes_per_pixel


def _check_tileable(width: int, height: int) -> None:
    if width <= 0 or height <= 0 or width % 8 or height % 8:
        raise ValueError(f"image size {width}x{height} is not a multiple of 8")


def _tile(src: bytes, width: int, height: int, bpp: int) -> bytearray:
    _check_tileable(width, height)
    if len(src) != width * height * bpp:
        raise ValueError("pixel data does not match the image size")
    dst = bytearray(len(src))
    for j in range(height):
        row = (height - 1 - j) * width * bpp
        coarse = (j & ~7) * width * bpp
        for i in range(width):
            out = morton_offset(i, j, bpp) + coarse
            start = row + i * bpp
            dst[out:out + bpp] = src[start:start + bpp]
    return dst


def tile_image32(pixels: bytes, width: int, height: int) -> bytearray:
    """Flip and Morton-tile 4-byte pixels into GPU layout."""
    return _tile(bytes(pixels), width, height, 4)


def tile_image8(src: bytes, size: int) -> bytearray:
    """Flip and Morton-tile a square 1-byte-per-pixel image."""
    return _tile(bytes(src), size, size, 1)


def downscale_image(data: bytes, size: int) -> bytearray:
    """Average 2x2 pixel blocks of a ``2*size`` square 4-byte image into a ``size`` square."""
    src = bytes(data)
    if len(src) != (2 * size) ** 2 * 4:
        raise ValueError("pixel data does not match the image size")
    stride = size * 2 * 4
    out = bytearray(size * size * 4)
    for j in range(size):
        for i in range(size):
            o2 = (i * 2 + j * 2 * size * 2) * 4
            o = (i + j * size) * 4
            for c in range(4):
                out[o + c] = (
                    src[o2 + c] + src[o2 + 4 + c] + src[o2 + stride + c] + src[o2 + stride + 4 + c]
                ) // 4
    return out


def _decode_rgba(path: str | os.PathLike) -> tuple[tuple[int, int], bytes]:
    with Image.open(path) as image:
        rgba = image.convert("RGBA")
        return rgba.size, rgba.tobytes()


def _to_abgr(rgba: bytes) -> bytearray:
    out = bytearray(len(rgba))
    out[0::4] = rgba[3::4]
    out[1::4] = rgba[2::4]
    out[2::4] = rgba[1::4]
    out[3::4] = rgba[0::4]
    return out


def load_texture(path: str | os.PathLike) -> tuple[int, int, bytes]:
    """Load a PNG as ``(width, height, tiled ABGR bytes)``."""
    try:
        (width, height), rgba = _decode_rgba(path)
    except OSError as exc:
        raise OSError(f"Failed to load texture {os.fspath(path)}") from exc
    return width, height, bytes(tile_image32(_to_abgr(rgba), width, height))


@dataclass(frozen=True)
class MapIcon:
    """Where a texture sits in the atlas, in 1/32768 texture units."""

    texture_hash: int = 0
    u: int = 0
    v: int = 0


@dataclass
class TextureMap:
    """A texture atlas of 16x16 tiles with its mipmap levels."""

    icons: list[MapIcon] = field(default_factory=list)
    levels: list[bytes] = field(default_factory=list)

    @classmethod
    def from_files(cls, files: Iterable[str | os.PathLike]) -> TextureMap:
        """Stitch the given tile images into an atlas; unusable files leave their slot empty."""
        buffer = bytearray(_BACKGROUND * (TEXTURE_MAPSIZE * TEXTURE_MAPSIZE))
        icons = [MapIcon() for _ in range(TEXTURE_MAPTILES * TEXTURE_MAPTILES)]
        loc_x = loc_y = 0
        row_bytes = TEXTURE_TILESIZE * 4
        for slot, filename in enumerate(islice(files, TEXTURE_MAPTILES * TEXTURE_MAPTILES)):
            try:
                (width, height), rgba = _decode_rgba(filename)
            except OSError as exc:
                log.warning("Couldn't decode %s: %s", os.fspath(filename), exc)
                continue
            if (width, height) != (TEXTURE_TILESIZE, TEXTURE_TILESIZE):
                log.warning("Image size(%d, %d) doesn't match", width, height)
                continue
            abgr = _to_abgr(rgba)
            for y in range(TEXTURE_TILESIZE):
                src = (TEXTURE_TILESIZE - y - 1) * row_bytes
                dst = ((loc_y + y) * TEXTURE_MAPSIZE + loc_x) * 4
                buffer[dst:dst + row_bytes] = abgr[src:src + row_bytes]
            icons[slot] = MapIcon(djb_hash(filename), 256 * loc_x, 256 * loc_y)
            loc_x += TEXTURE_TILESIZE
            if loc_x == TEXTURE_MAPSIZE:
                loc_y += TEXTURE_TILESIZE
                loc_x = 0

        levels = [bytes(tile_image32(buffer, TEXTURE_MAPSIZE, TEXTURE_MAPSIZE))]
        image: bytes = bytes(buffer)
        size = TEXTURE_MAPSIZE // 2
        for _ in range(MIPMAP_LEVELS):
            image = bytes(downscale_image(image, size))
            levels.append(bytes(tile_image32(image, size, size)))
            size //= 2
        return cls(icons, levels)

    def get_icon(self, filename: str | os.PathLike) -> MapIcon:
        """The icon stitched from ``filename``, or an all-zero icon."""
        h = djb_hash(filename)
        return next((icon for icon in self.icons if icon.texture_hash == h), MapIcon())