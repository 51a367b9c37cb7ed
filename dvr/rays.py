"""
Pixel coordinates and ray clipping.

This module handles:
- Building pixel-centre coordinates for a whole frame
- Converting pixel coordinates to normalized uv
- Clipping rays against the scene bounding box (slab method)
"""

from __future__ import annotations

from typing import Sequence, Tuple, Union

import torch

from .utils import as_vec, check_last_dim


Bounds = Union[torch.Tensor, Sequence[float]]


def get_pixel_coords(
    width: int,
    height: int,
    dtype: torch.dtype = torch.float32,
    device: str = "cpu",
) -> torch.Tensor:
    """
    Pixel-centre coordinates for every pixel of a frame.

    Coordinates follow the host convention (origin at the bottom-left,
    y-up) while the returned grid is laid out image-style, row 0 being the
    top of the picture.

    Returns
    -------
    coords : torch.Tensor
        Shape (H, W, 2).
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Resolution must be positive, got {width}x{height}")

    i, j = torch.meshgrid(
        torch.arange(width, dtype=dtype, device=device),
        torch.arange(height, dtype=dtype, device=device),
        indexing='xy'
    )
    return torch.stack([i + 0.5, (height - 1 - j) + 0.5], dim=-1)


def pixel_to_uv(frag_coord: torch.Tensor, resolution: torch.Tensor) -> torch.Tensor:
    """Normalize pixel coordinates by the resolution. Shape (..., 2)."""
    check_last_dim(frag_coord, 2, "frag_coord")
    if bool((resolution <= 0).any()):
        raise ValueError(f"Resolution must be positive, got {resolution.tolist()}")
    return frag_coord / resolution


def intersect_box(
    rays_o: torch.Tensor,
    rays_d: torch.Tensor,
    bb_min: Bounds,
    bb_max: Bounds,
) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
    """
    Intersect rays with an axis-aligned box using the slab method.

    A zero direction component divides to +/-inf and is resolved by the
    min/max reduction. An origin lying exactly on a slab plane of a
    parallel ray gives NaN, which compares false and counts as a miss.

    Parameters
    ----------
    rays_o : torch.Tensor
        Ray origins, shape (..., 3).
    rays_d : torch.Tensor
        Ray directions, shape (..., 3).
    bb_min, bb_max : sequence of float or torch.Tensor
        Box corners.

    Returns
    -------
    hit : torch.Tensor
        ``t_far > max(t_near, 0)``, shape (...,). A box lying entirely
        behind the origin is not a hit.
    t_near : torch.Tensor
        Entry distance (negative when the origin is inside), shape (...,).
    t_far : torch.Tensor
        Exit distance, shape (...,).
    """
    check_last_dim(rays_o, 3, "rays_o")
    check_last_dim(rays_d, 3, "rays_d")
    if not isinstance(bb_min, torch.Tensor):
        bb_min = as_vec(bb_min, rays_o)
    if not isinstance(bb_max, torch.Tensor):
        bb_max = as_vec(bb_max, rays_o)

    t0 = (bb_min - rays_o) / rays_d
    t1 = (bb_max - rays_o) / rays_d
    t_min = torch.minimum(t0, t1)
    t_max = torch.maximum(t0, t1)

    t_near = torch.amax(t_min, dim=-1)
    t_far = torch.amin(t_max, dim=-1)

    return t_far > torch.clamp(t_near, min=0.0), t_near, t_far


def ray_start(rays_o: torch.Tensor, rays_d: torch.Tensor, t_near: torch.Tensor) -> torch.Tensor:
    """Entry point of each ray, never behind the origin."""
    return rays_o + rays_d * torch.clamp(t_near, min=0.0)[..., None]
