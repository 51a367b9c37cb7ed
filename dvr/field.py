"""
Scalar density field, binary occupancy and the transfer function.

The "volume" is evaluated on demand from the three primitives of a
``SceneConfig``; nothing is voxelized.
"""

from __future__ import annotations

import torch

from .config import SceneConfig
from .primitives import contains


# Transfer function colours
TRANSPARENT = (0.0, 0.0, 0.0, 0.0)
BLUE = (0.0, 0.0, 1.0, 1.0)
GREEN = (0.0, 1.0, 0.0, 1.0)
RED = (1.0, 0.0, 0.0, 1.0)
OPAQUE_BLACK = (0.0, 0.0, 0.0, 1.0)


def density(p: torch.Tensor, scene: SceneConfig) -> torch.Tensor:
    """
    Sum the density weights of every primitive containing each point.

    Overlapping primitives stack additively.

    Parameters
    ----------
    p : torch.Tensor
        Sample points, shape (..., 3).
    scene : SceneConfig
        Scene primitives.

    Returns
    -------
    torch.Tensor
        Density, shape (...,). Zero outside all primitives.
    """
    value = torch.zeros(p.shape[:-1], dtype=p.dtype, device=p.device)
    for primitive in scene.primitives:
        value = value + contains(p, primitive).to(p.dtype) * primitive.density
    return value


def occupancy(p: torch.Tensor, scene: SceneConfig) -> torch.Tensor:
    """1.0 where a point lies inside any primitive, else 0.0. Shape (...,)."""
    inside = torch.zeros(p.shape[:-1], dtype=torch.bool, device=p.device)
    for primitive in scene.primitives:
        inside = inside | contains(p, primitive)
    return inside.to(p.dtype)


def classify(value: torch.Tensor, scene: SceneConfig, eps: float = 1e-7) -> torch.Tensor:
    """
    Map summed density to RGBA.

    The thresholds depend on the first two primitive weights (s1, s2):

        value <= eps                       -> transparent black
        eps < value <= s1 + eps            -> blue
        s1 + eps < value <= s2 + eps       -> green
        s2 + eps < value <= s1 + s2 + eps  -> red
        value > s1 + s2 + eps              -> opaque black

    Parameters
    ----------
    value : torch.Tensor
        Density values, shape (...,).
    scene : SceneConfig
        Supplies the primitive weights.
    eps : float
        Tolerance guarding the boundaries of each band.

    Returns
    -------
    torch.Tensor
        Colours, shape (..., 4).
    """
    s1 = scene.box1.density
    s2 = scene.box2.density

    rgba = torch.zeros(value.shape + (4,), dtype=value.dtype, device=value.device)
    bands = [
        ((value > eps) & (value <= s1 + eps), BLUE),
        ((value > s1 + eps) & (value <= s2 + eps), GREEN),
        ((value > s2 + eps) & (value <= s1 + s2 + eps), RED),
        (value > s1 + s2 + eps, OPAQUE_BLACK),
    ]
    for mask, color in bands:
        rgba[mask] = torch.tensor(color, dtype=value.dtype, device=value.device)

    return rgba
