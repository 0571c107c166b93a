"""
Snapshot encoding for fluid broadcasts.

A snapshot is one unsigned byte per cell, row-major, exactly
``width * height`` long:

    byte = min(255, floor(max(level, 0) * sensitivity))

With the default sensitivity of 25.5 a depth of 10.0 or more saturates at
255. Byte 0 always means "no contamination" and receivers must render it
as absent, never as a faint trace.

Snapshots may optionally be run-length encoded as ``(run, value)`` byte
pairs with runs of 1..255. Decoding a run-length payload yields exactly
the raw snapshot bytes.
"""

from typing import Optional, Union

import numpy as np

from .grid import validate_dimensions

DEFAULT_SENSITIVITY = 25.5
MAX_BYTE = 255
MAX_RUN = 255

BytesLike = Union[bytes, bytearray, memoryview, np.ndarray]


class SnapshotDecodeError(ValueError):
    """Raised when a received snapshot cannot be mapped onto the grid."""


def saturation_level(sensitivity: float = DEFAULT_SENSITIVITY) -> float:
    """Lowest level that encodes to 255."""
    return MAX_BYTE / sensitivity


def encode_snapshot(
    levels: np.ndarray,
    sensitivity: float = DEFAULT_SENSITIVITY,
    out: Optional[np.ndarray] = None,
    scratch: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Quantize fluid levels into snapshot bytes.

    Args:
        levels: Flat float array of fluid levels (not modified)
        sensitivity: Bytes per unit of level
        out: Optional uint8 output buffer of the same length
        scratch: Optional float32 work buffer of the same length; passing
            one keeps the call free of temporary allocations

    Returns:
        uint8 array, ``out`` when given
    """
    levels = np.asarray(levels).reshape(-1)
    if scratch is None:
        scratch = np.empty(levels.size, dtype=np.float32)
    if out is None:
        out = np.empty(levels.size, dtype=np.uint8)

    np.multiply(levels, sensitivity, out=scratch, casting="unsafe")
    # Clamping low end at zero also hides any float drift below zero
    np.clip(scratch, 0.0, MAX_BYTE, out=scratch)
    np.floor(scratch, out=scratch)
    np.copyto(out, scratch, casting="unsafe")
    return out


def decode_snapshot(payload: BytesLike, width: int, height: int) -> np.ndarray:
    """
    Validate a raw snapshot and view it as a grid.

    Args:
        payload: Raw snapshot bytes
        width: Grid width
        height: Grid height

    Returns:
        uint8 array of shape (height, width)

    Raises:
        SnapshotDecodeError: If the payload length is not ``width * height``
    """
    width, height = validate_dimensions(width, height)
    data = np.frombuffer(bytes(payload), dtype=np.uint8)
    if data.size != width * height:
        raise SnapshotDecodeError(
            f"Snapshot has {data.size} bytes, expected {width * height} ({width}x{height})"
        )
    return data.reshape(height, width)


def dequantize(snapshot: BytesLike, sensitivity: float = DEFAULT_SENSITIVITY) -> np.ndarray:
    """
    Reconstruct approximate levels from snapshot bytes.

    Byte 0 maps to exactly 0.0 so renderers can treat it as transparent.
    """
    data = np.frombuffer(bytes(snapshot), dtype=np.uint8)
    return data.astype(np.float32) / np.float32(sensitivity)


def rle_encode(snapshot: BytesLike) -> bytes:
    """
    Run-length encode snapshot bytes as ``(run, value)`` pairs.

    Args:
        snapshot: Raw snapshot bytes

    Returns:
        Encoded payload, empty for an empty snapshot
    """
    data = np.frombuffer(bytes(snapshot), dtype=np.uint8)
    if data.size == 0:
        return b""

    # Start of every run of equal values
    starts = np.flatnonzero(np.concatenate(([True], data[1:] != data[:-1])))
    lengths = np.diff(np.append(starts, data.size))

    encoded = bytearray()
    for start, length in zip(starts.tolist(), lengths.tolist()):
        value = int(data[start])
        while length > 0:
            run = min(length, MAX_RUN)
            encoded.append(run)
            encoded.append(value)
            length -= run
    return bytes(encoded)


def rle_decode(payload: BytesLike, width: int, height: int) -> np.ndarray:
    """
    Decode a run-length payload back into snapshot bytes.

    Args:
        payload: ``(run, value)`` pairs
        width: Grid width
        height: Grid height

    Returns:
        Flat uint8 array of ``width * height`` bytes

    Raises:
        SnapshotDecodeError: On odd length, zero runs, or a total run length
            that does not match the grid
    """
    width, height = validate_dimensions(width, height)
    data = np.frombuffer(bytes(payload), dtype=np.uint8)
    if data.size % 2:
        raise SnapshotDecodeError("Run-length payload has an odd number of bytes")

    runs = data[0::2]
    values = data[1::2]
    if np.any(runs == 0):
        raise SnapshotDecodeError("Run-length payload contains a zero-length run")

    total = int(runs.sum(dtype=np.int64))
    if total != width * height:
        raise SnapshotDecodeError(
            f"Run-length payload covers {total} cells, expected {width * height}"
        )
    return np.repeat(values, runs.astype(np.int64))
