"""Byte-range to piece mapping for a file inside a torrent."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator


@dataclass(frozen=True)
class PieceSlice:
    """The part of one piece that belongs to a requested range."""

    piece: int
    begin: int  # offset inside the piece, inclusive
    end: int  # offset inside the piece, exclusive

    @property
    def size(self) -> int:
        return self.end - self.begin


def piece_span(
    file_offset: int, start: int, end: int, piece_length: int
) -> tuple[int, int]:
    """Return the first and last piece index covering file bytes ``[start, end]``."""
    if piece_length <= 0:
        msg = f"piece_length must be positive, got {piece_length}"
        raise ValueError(msg)
    return (
        (file_offset + start) // piece_length,
        (file_offset + end) // piece_length,
    )


def iter_piece_slices(
    file_offset: int, start: int, end: int, piece_length: int
) -> Iterator[PieceSlice]:
    """Yield, in order, the piece slices making up file bytes ``[start, end]``."""
    abs_start = file_offset + start
    abs_end = file_offset + end
    first, last = piece_span(file_offset, start, end, piece_length)
    for piece in range(first, last + 1):
        piece_base = piece * piece_length
        begin = max(abs_start, piece_base) - piece_base
        stop = min(abs_end, piece_base + piece_length - 1) - piece_base + 1
        yield PieceSlice(piece, begin, stop)
