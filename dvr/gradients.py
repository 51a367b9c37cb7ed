"""
Finite-difference gradient estimation on the occupancy field.

All schemes return the direction of increasing occupancy, un-normalized.
The renderer negates it to get an outward surface normal. Exactly one
scheme is active per renderer; it is resolved once with
``get_gradient_fn``.
"""

from __future__ import annotations

import itertools
import math
from functools import partial
from typing import Callable

import torch

from .config import GradientScheme, SceneConfig
from .field import occupancy


OccupancyFn = Callable[[torch.Tensor], torch.Tensor]
GradientFn = Callable[[OccupancyFn, torch.Tensor, float], torch.Tensor]


def _axis_offsets(p: torch.Tensor, h: float) -> torch.Tensor:
    return torch.eye(3, dtype=p.dtype, device=p.device) * h


def central_difference(occupancy_fn: OccupancyFn, p: torch.Tensor, h: float) -> torch.Tensor:
    """(f(p + h e_i) - f(p - h e_i)) / 2h per axis. Shape (..., 3)."""
    offsets = _axis_offsets(p, h)
    forward = occupancy_fn(p[..., None, :] + offsets)
    backward = occupancy_fn(p[..., None, :] - offsets)
    return (forward - backward) / (2.0 * h)


def intermediate_difference(occupancy_fn: OccupancyFn, p: torch.Tensor, h: float) -> torch.Tensor:
    """(f(p + h e_i) - f(p)) / h per axis. Shape (..., 3)."""
    offsets = _axis_offsets(p, h)
    forward = occupancy_fn(p[..., None, :] + offsets)
    return (forward - occupancy_fn(p)[..., None]) / h


def sobel_kernel(isotropic: bool = False) -> tuple:
    """
    Build the 3x3x3 Sobel stencil without its centre tap.

    Each axis differences the +1 and -1 planes and smooths the two
    orthogonal axes with {1, w, 1}; w is 2 for the classic kernel and
    sqrt(2) for the isotropic one.

    Returns
    -------
    offsets : torch.Tensor
        Integer offsets in voxels, shape (26, 3).
    weights : torch.Tensor
        Per-axis weight of each tap, shape (26, 3).
    norm : float
        Normalization in voxels, (2 + w)^2.
    """
    w = math.sqrt(2.0) if isotropic else 2.0
    smooth = {-1: 1.0, 0: w, 1: 1.0}

    offsets = [o for o in itertools.product((-1, 0, 1), repeat=3) if o != (0, 0, 0)]
    weights = []
    for o in offsets:
        row = []
        for axis in range(3):
            others = [smooth[o[b]] for b in range(3) if b != axis]
            row.append(o[axis] * others[0] * others[1])
        weights.append(row)

    return (
        torch.tensor(offsets, dtype=torch.float64),
        torch.tensor(weights, dtype=torch.float64),
        (2.0 + w) ** 2,
    )


def sobel(
    occupancy_fn: OccupancyFn,
    p: torch.Tensor,
    h: float,
    isotropic: bool = False,
) -> torch.Tensor:
    """Sobel gradient over the 26 neighbours, normalized by (2 + w)^2 h. Shape (..., 3)."""
    offsets, weights, norm = sobel_kernel(isotropic)
    offsets = offsets.to(dtype=p.dtype, device=p.device) * h
    weights = weights.to(dtype=p.dtype, device=p.device)

    samples = occupancy_fn(p[..., None, :] + offsets)  # (..., 26)
    return torch.sum(samples[..., :, None] * weights, dim=-2) / (norm * h)


def no_gradient(occupancy_fn: OccupancyFn, p: torch.Tensor, h: float) -> torch.Tensor:
    """Disable gradient shading: always zero."""
    return torch.zeros_like(p)


_SCHEMES = {
    GradientScheme.CENTRAL: central_difference,
    GradientScheme.INTERMEDIATE: intermediate_difference,
    GradientScheme.SOBEL: partial(sobel, isotropic=False),
    GradientScheme.SOBEL_ISOTROPIC: partial(sobel, isotropic=True),
    GradientScheme.NONE: no_gradient,
}


def get_gradient_fn(scheme) -> GradientFn:
    """Resolve a scheme (enum or name) to its gradient function."""
    if isinstance(scheme, str):
        scheme = GradientScheme(scheme.lower())
    return _SCHEMES[scheme]


def estimate_gradient(
    p: torch.Tensor,
    scene: SceneConfig,
    scheme=GradientScheme.INTERMEDIATE,
    h: float = 1.0 / 64.0,
) -> torch.Tensor:
    """Gradient of the scene occupancy at ``p`` using ``scheme``."""
    return get_gradient_fn(scheme)(partial(occupancy, scene=scene), p, h)
