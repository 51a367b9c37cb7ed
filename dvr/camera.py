"""
Orbiting camera and per-pixel ray generation.

The camera circles the origin in the XZ-plane at a fixed height and is a
pure function of animation time, so nothing is carried between frames.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

import torch

from .config import CameraConfig
from .utils import as_vec, check_last_dim, normalize


@dataclass
class CameraState:
    """World-space camera frame for one instant."""

    position: torch.Tensor  # (3,)
    forward: torch.Tensor   # (3,), unit, towards the origin
    right: torch.Tensor     # (3,), unit
    up: torch.Tensor        # (3,), unit, re-orthogonalized


def orbit_camera(
    time: float,
    config: CameraConfig,
    dtype: torch.dtype = torch.float32,
    device: str = "cpu",
) -> CameraState:
    """
    Camera state at animation time ``time``.

    Position is ``(r cos(wt), height, r sin(wt))``; the camera looks at the
    origin and its basis is rebuilt from ``config.world_up``.
    """
    angle = config.angular_speed * time
    position = torch.tensor([
        config.orbit_radius * math.cos(angle),
        config.height,
        config.orbit_radius * math.sin(angle),
    ], dtype=dtype, device=device)

    forward = -normalize(position)
    world_up = as_vec(config.world_up, position)
    right = normalize(torch.linalg.cross(forward, world_up))
    up = normalize(torch.linalg.cross(right, forward))

    return CameraState(position=position, forward=forward, right=right, up=up)


def near_plane_corners(
    state: CameraState,
    aspect: float,
    config: CameraConfig,
) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor, torch.Tensor]:
    """
    World-space corners of the near plane.

    The horizontal FOV follows from the vertical one and the aspect ratio,
    ``fovx = 2 atan(tan(fovy / 2) aspect)``.

    Returns
    -------
    bottom_left, bottom_right, top_left, top_right : torch.Tensor
        Each of shape (3,).
    """
    fovy = config.fovy
    fovx = 2.0 * math.atan(math.tan(fovy / 2.0) * aspect)
    half_h = math.tan(fovy / 2.0) * config.z_near
    half_w = math.tan(fovx / 2.0) * config.z_near

    center = state.position + state.forward * config.z_near
    dx = state.right * half_w
    dy = state.up * half_h

    return center - dx - dy, center + dx - dy, center - dx + dy, center + dx + dy


def generate_rays(
    uv: torch.Tensor,
    aspect: float,
    time: float,
    config: CameraConfig,
) -> Tuple[torch.Tensor, torch.Tensor]:
    """
    Generate world-space rays for normalized pixel coordinates.

    Parameters
    ----------
    uv : torch.Tensor
        Normalized pixel coordinates in [0, 1]^2, y-up, shape (..., 2).
    aspect : float
        Width / height of the output image.
    time : float
        Animation time in seconds.
    config : CameraConfig
        Camera orbit and projection parameters.

    Returns
    -------
    rays_o : torch.Tensor
        Ray origins (the camera position), shape (..., 3).
    rays_d : torch.Tensor
        Unit ray directions, shape (..., 3).
    """
    check_last_dim(uv, 2, "uv")
    if aspect <= 0:
        raise ValueError(f"Aspect ratio must be positive, got {aspect}")

    state = orbit_camera(time, config, dtype=uv.dtype, device=uv.device)
    bottom_left, bottom_right, top_left, top_right = near_plane_corners(state, aspect, config)

    u = uv[..., 0:1]
    v = uv[..., 1:2]
    bottom = bottom_left + (bottom_right - bottom_left) * u
    top = top_left + (top_right - top_left) * u
    target = bottom + (top - bottom) * v

    rays_d = normalize(target - state.position)
    rays_o = state.position.expand(rays_d.shape)

    return rays_o, rays_d
