# nicecrop/src/nicecrop/crop_editor/regions.py

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, TypedDict

from nicecrop.errors import ValidationReject
from nicecrop.utils.logging import get_logger
from .geometry import Rect

logger = get_logger(__name__)

# Display-space pixels, zoom independent.
MIN_REGION_SIZE: float = 20.0

_ID_PREFIX = "region-"


class RegionDict(TypedDict, total=False):
    id: str
    x: float
    y: float
    width: float
    height: float
    label: Optional[str]
    filename: Optional[str]


@dataclass(frozen=True)
class Region:
    """One rectangle of interest, in display-space floats."""

    id: str
    x: float
    y: float
    width: float
    height: float
    label: Optional[str] = None
    filename: Optional[str] = None

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)

    def to_dict(self) -> RegionDict:
        return {
            "id": self.id,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "label": self.label,
            "filename": self.filename,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Region":
        return cls(
            id=str(data["id"]),
            x=float(data["x"]),
            y=float(data["y"]),
            width=float(data["width"]),
            height=float(data["height"]),
            label=data.get("label"),
            filename=data.get("filename"),
        )


_UPDATABLE = {f.name for f in fields(Region)} - {"id"}
_GEOMETRY = {"x", "y", "width", "height"}


class RegionStore:
    """Ordered region collection plus the selected region id.

    Insertion order is display order and export numbering. The store only
    ever touches its own collection.

    Size policy at the boundary:
        - ``create`` needs ``width > min_size`` and ``height > min_size``
          (the draw gate).
        - ``update`` refuses to shrink a region below ``min_size``
          (the resize gate).
        - ``replace_all`` only needs positive sizes; detection results may
          legitimately be small.
    """

    def __init__(self, min_size: float = MIN_REGION_SIZE) -> None:
        self.min_size = float(min_size)
        self._regions: List[Region] = []
        self._selected_id: Optional[str] = None
        self._next_id: int = 1

    # ------------- read API -------------

    @property
    def regions(self) -> List[Region]:
        return list(self._regions)

    @property
    def selected_id(self) -> Optional[str]:
        return self._selected_id

    @property
    def selected(self) -> Optional[Region]:
        if self._selected_id is None:
            return None
        return self.get(self._selected_id)

    def get(self, region_id: str) -> Optional[Region]:
        for r in self._regions:
            if r.id == region_id:
                return r
        return None

    def index_of(self, region_id: str) -> int:
        """0-based position, or -1."""
        for i, r in enumerate(self._regions):
            if r.id == region_id:
                return i
        return -1

    def to_dicts(self) -> List[RegionDict]:
        return [r.to_dict() for r in self._regions]

    def __len__(self) -> int:
        return len(self._regions)

    def __iter__(self) -> Iterator[Region]:
        return iter(list(self._regions))

    def __contains__(self, region_id: object) -> bool:
        return any(r.id == region_id for r in self._regions)

    # ------------- mutations -------------

    def create(
        self,
        rect: Rect,
        label: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> str:
        """Append a new region and return its fresh id."""
        if not (rect.width > self.min_size and rect.height > self.min_size):
            raise ValidationReject(
                f"region {rect.width:.1f}x{rect.height:.1f} is not larger than "
                f"{self.min_size:.0f}x{self.min_size:.0f}"
            )
        if rect.x < 0 or rect.y < 0:
            raise ValidationReject(f"region origin must be non-negative, got ({rect.x}, {rect.y})")

        region = Region(
            id=self._new_id(),
            x=float(rect.x),
            y=float(rect.y),
            width=float(rect.width),
            height=float(rect.height),
            label=label,
            filename=filename,
        )
        self._regions.append(region)
        logger.debug(f"create: {region.id} ({region.x:.1f}, {region.y:.1f}, {region.width:.1f}x{region.height:.1f})")
        return region.id

    def update(self, region_id: str, changes: Optional[Mapping[str, Any]] = None) -> None:
        """Merge ``changes`` into a region. Unknown ids are a no-op."""
        idx = self.index_of(region_id)
        if idx < 0:
            return
        if not changes:
            return

        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise KeyError(f"cannot update region field(s): {sorted(unknown)}")

        coerced: Dict[str, Any] = {
            k: (float(v) if k in _GEOMETRY else v) for k, v in changes.items()
        }
        updated = replace(self._regions[idx], **coerced)

        if "width" in coerced or "height" in coerced:
            if updated.width < self.min_size or updated.height < self.min_size:
                raise ValidationReject(
                    f"resize to {updated.width:.1f}x{updated.height:.1f} is below "
                    f"{self.min_size:.0f}x{self.min_size:.0f}"
                )
        if updated.x < 0 or updated.y < 0:
            raise ValidationReject(f"region origin must be non-negative, got ({updated.x}, {updated.y})")

        self._regions[idx] = updated

    def delete(self, region_id: str) -> bool:
        """Remove a region. Returns True if something was removed."""
        idx = self.index_of(region_id)
        if idx < 0:
            return False
        del self._regions[idx]
        if self._selected_id == region_id:
            self._selected_id = None
        logger.debug(f"delete: {region_id}")
        return True

    def select(self, region_id: Optional[str]) -> None:
        """Select a region by id, or clear with None. Unknown ids are ignored."""
        if region_id is not None and region_id not in self:
            return
        self._selected_id = region_id

    def replace_all(self, regions: Sequence[Region | Mapping[str, Any]]) -> None:
        """Swap the whole collection; selection is cleared.

        Entries may be ``Region`` objects or dicts. Missing or duplicate ids
        are replaced with fresh ones.
        """
        new: List[Region] = []
        seen: set[str] = set()
        for item in regions:
            if isinstance(item, Region):
                region = item
            else:
                data = dict(item)
                if not data.get("id"):
                    data["id"] = ""
                region = Region.from_dict(data)

            if region.width <= 0 or region.height <= 0:
                raise ValidationReject(f"region {region.id!r} has no area")

            if not region.id or region.id in seen:
                region = replace(region, id="")
            new.append(region)
            if region.id:
                seen.add(region.id)

        self._regions = []
        self._selected_id = None
        self._bump_next_id(r.id for r in new if r.id)
        self._regions = [r if r.id else replace(r, id=self._new_id()) for r in new]
        logger.debug(f"replace_all: {len(self._regions)} region(s)")

    def clear(self) -> None:
        self.replace_all([])

    # ------------- internals -------------

    def _new_id(self) -> str:
        region_id = f"{_ID_PREFIX}{self._next_id}"
        self._next_id += 1
        return region_id

    def _bump_next_id(self, ids) -> None:
        # Never hand out an id like "region-5" that already exists.
        for region_id in ids:
            if region_id.startswith(_ID_PREFIX):
                try:
                    n = int(region_id[len(_ID_PREFIX):])
                except ValueError:
                    continue
                if n >= self._next_id:
                    self._next_id = n + 1
