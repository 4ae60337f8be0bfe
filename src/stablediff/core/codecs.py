"""Text and image codecs for the placeholder diffusion model.

Three stateless stages sit on either side of the denoising loop:

- :class:`SimpleTokenizer` turns prompt text into a fixed-length list of
  token ids (CLIP-sized vocabulary and context length).
- :class:`TextEncoder` turns token ids into a flat conditioning vector of
  ``len(tokens) * embedding_dim`` float32 values.
- :class:`ImageDecoder` renders the final latents into a 24-bit BMP.

None of them has learned parameters.  They define the data-flow contract a
real tokenizer, CLIP text encoder and VAE decoder would be dropped into.

BMP Layout
----------
``encode_bmp`` writes the classic Windows bitmap layout:

=========  =====  ===========================================
Offset     Size   Field
=========  =====  ===========================================
0          2      ``BM`` signature
2          4      total file size
6          4      reserved (zero)
10         4      pixel data offset (54)
14         40     BITMAPINFOHEADER (24 bpp, no compression,
                  2835 px/m resolution, empty palette)
54         ...    rows bottom-to-top, BGR, padded to 4 bytes
=========  =====  ===========================================
"""

from __future__ import annotations

import logging
import struct

import numpy as np

logger = logging.getLogger(__name__)

BMP_HEADER_SIZE = 54
_INFO_HEADER_SIZE = 40
_PIXELS_PER_METER = 2835


class SimpleTokenizer:
    """Whitespace tokenizer hashing each word into the vocabulary.

    A word's id is the sum of its character code points modulo
    ``vocab_size - 2``, offset by one so that 0 stays reserved for padding.
    The last two vocabulary slots are the start and end markers.
    """

    def __init__(self, vocab_size: int = 49408, max_length: int = 77) -> None:
        self.vocab_size = vocab_size
        self.max_length = max_length

    @property
    def start_id(self) -> int:
        return self.vocab_size - 2

    @property
    def end_id(self) -> int:
        return self.vocab_size - 1

    def encode(self, text: str) -> list[int]:
        """Tokenize *text* into exactly ``max_length`` ids.

        Args:
            text: Prompt text.  Any length, any unicode.

        Returns:
            ``[start, word ids..., end, 0, 0, ...]`` truncated or padded to
            ``max_length``.
        """
        tokens = [self.start_id]
        for word in text.split()[: self.max_length - 2]:
            tokens.append(sum(ord(char) for char in word) % (self.vocab_size - 2) + 1)
        tokens.append(self.end_id)

        if len(tokens) < self.max_length:
            tokens.extend([0] * (self.max_length - len(tokens)))
        return tokens[: self.max_length]


class TextEncoder:
    """Deterministic stand-in for a CLIP text encoder."""

    def __init__(self, embedding_dim: int = 768) -> None:
        self.embedding_dim = embedding_dim

    def encode(self, tokens: list[int]) -> np.ndarray:
        """Embed each token as ``sin((token_id + d) / 1000)`` for every dimension ``d``.

        Returns:
            Flat float32 array of length ``len(tokens) * embedding_dim``.
        """
        ids = np.asarray(tokens, dtype=np.float32)[:, None]
        dims = np.arange(self.embedding_dim, dtype=np.float32)[None, :]
        return np.sin((ids + dims) / np.float32(1000.0)).astype(np.float32).ravel()


class ImageDecoder:
    """Render latents into an RGB bitmap.

    Each pixel samples one latent value (wrapping around the latent vector in
    row-major order) and mixes it with its normalised position and the mean
    and variance of the whole latent vector.
    """

    def __init__(self, latent_channels: int = 4) -> None:
        self.latent_channels = latent_channels

    def decode(self, latents: np.ndarray, width: int, height: int) -> bytes:
        """Decode *latents* into a ``width`` x ``height`` 24-bit BMP.

        Raises:
            ValueError: If *latents* is empty or the size is not positive.
        """
        if latents.size == 0:
            raise ValueError("Cannot decode an empty latent vector")
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid output size {width}x{height}")

        latents = latents.astype(np.float32, copy=False)
        mean = latents.mean(dtype=np.float32)
        variance = np.square(latents - mean).mean(dtype=np.float32)

        ys, xs = np.meshgrid(
            np.arange(height, dtype=np.int64),
            np.arange(width, dtype=np.int64),
            indexing="ij",
        )
        values = latents[(xs + ys * width) % latents.size]
        norm_x = xs.astype(np.float32) / np.float32(width)
        norm_y = ys.astype(np.float32) / np.float32(height)

        red = norm_x * 255.0 + values * 50.0 + mean * 100.0
        green = norm_y * 255.0 + variance * 200.0 + values * 30.0
        blue = (norm_x + norm_y) * 127.5 + values * 70.0

        # Stored channel order is BGR.
        pixels = np.stack([blue, green, red], axis=-1)
        pixels = np.clip(pixels, 0.0, 255.0).astype(np.uint8)

        logger.debug("Decoded %d latents into %dx%d bitmap", latents.size, width, height)
        return encode_bmp(pixels)


def encode_bmp(pixels: np.ndarray) -> bytes:
    """Wrap a ``(height, width, 3)`` BGR uint8 array in a BMP container.

    Row ``0`` of *pixels* is the top of the image; rows are written
    bottom-to-top as the format requires.
    """
    height, width, _ = pixels.shape
    row_size = width * 3
    padding = (4 - row_size % 4) % 4
    image_size = (row_size + padding) * height
    file_size = BMP_HEADER_SIZE + image_size

    file_header = struct.pack("<2sIII", b"BM", file_size, 0, BMP_HEADER_SIZE)
    info_header = struct.pack(
        "<IiiHHIIiiII",
        _INFO_HEADER_SIZE,
        width,
        height,
        1,
        24,
        0,
        image_size,
        _PIXELS_PER_METER,
        _PIXELS_PER_METER,
        0,
        0,
    )

    rows = pixels[::-1].reshape(height, row_size)
    if padding:
        rows = np.concatenate([rows, np.zeros((height, padding), dtype=np.uint8)], axis=1)
    return file_header + info_header + rows.tobytes()
