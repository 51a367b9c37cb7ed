"""
Containment tests against the analytic scene primitives.
"""

from __future__ import annotations

from typing import Sequence, Union

import torch

from .config import Primitive
from .utils import as_vec


Center = Union[torch.Tensor, Sequence[float]]


def point_in_sphere(p: torch.Tensor, center: Center, radius: float) -> torch.Tensor:
    """True where ``|p - center| <= radius``. Shape (...,)."""
    if not isinstance(center, torch.Tensor):
        center = as_vec(center, p)
    return torch.linalg.norm(p - center, dim=-1) <= radius


def point_in_box(p: torch.Tensor, center: Center, half_width: float) -> torch.Tensor:
    """True where ``|p - center| < half_width`` on all three axes. Shape (...,)."""
    if not isinstance(center, torch.Tensor):
        center = as_vec(center, p)
    return torch.all(torch.abs(p - center) < half_width, dim=-1)


def contains(p: torch.Tensor, primitive: Primitive) -> torch.Tensor:
    if primitive.kind == "sphere":
        return point_in_sphere(p, primitive.center, primitive.extent)
    return point_in_box(p, primitive.center, primitive.extent)
