from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True, slots=True)
class Edges:
    """Which rectangle edges a handle moves."""

    left: bool = False
    right: bool = False
    top: bool = False
    bottom: bool = False


class Handle(Enum):
    """The 8 compass-point resize handles of a crop rectangle."""

    N = "n"
    S = "s"
    E = "e"
    W = "w"
    NE = "ne"
    NW = "nw"
    SE = "se"
    SW = "sw"

    @property
    def edges(self) -> Edges:
        return _EDGES[self]

    @property
    def is_corner(self) -> bool:
        return len(self.value) == 2

    def mirrored(self, horizontal: bool, vertical: bool) -> Handle:
        """Return the handle seen through a horizontal and/or vertical flip."""
        name = self.value
        if vertical:
            name = name.translate(_SWAP_NS)
        if horizontal:
            name = name.translate(_SWAP_EW)
        return Handle(name)

    @classmethod
    def parse(cls, value: str | Handle) -> Handle:
        if isinstance(value, Handle):
            return value
        return cls(str(value).strip().lower())


_EDGES: dict[Handle, Edges] = {
    Handle.N: Edges(top=True),
    Handle.S: Edges(bottom=True),
    Handle.E: Edges(right=True),
    Handle.W: Edges(left=True),
    Handle.NE: Edges(right=True, top=True),
    Handle.NW: Edges(left=True, top=True),
    Handle.SE: Edges(right=True, bottom=True),
    Handle.SW: Edges(left=True, bottom=True),
}

_SWAP_NS = str.maketrans("ns", "sn")
_SWAP_EW = str.maketrans("ew", "we")
