"""
Ray marching and front-to-back compositing.

Each ray is clipped to the scene bounding box, stepped a fixed number of
times, and every non-empty sample is classified, shaded and composited
with the premultiplied "over" operator until the ray turns opaque.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Dict, Optional, Sequence

import torch
import torch.nn as nn

from .camera import generate_rays
from .config import DVRConfig, SceneConfig
from .field import classify, density, occupancy
from .gradients import get_gradient_fn
from .rays import get_pixel_coords, intersect_box, pixel_to_uv, ray_start
from .shading import blinn_phong
from .utils import as_vec, check_last_dim


def composite_background(
    accum: torch.Tensor,
    background: torch.Tensor,
    mode: str = "legacy",
) -> torch.Tensor:
    """
    Blend accumulated colour over the background.

    ``legacy`` computes ``accum * a + (1 - a) * background``, weighting the
    accumulated colour by its alpha a second time. ``over`` is the plain
    premultiplied ``accum + (1 - a) * background``.
    """
    alpha = accum[..., 3:4]
    if mode == "legacy":
        return accum * alpha + (1.0 - alpha) * background
    if mode == "over":
        return accum + (1.0 - alpha) * background
    raise ValueError(f"Unknown background blend '{mode}'")


def step_length(scene: SceneConfig, sample_count: int) -> float:
    """March step, taken from the x extent of the bounding box on every axis."""
    return (scene.bb_max[0] - scene.bb_min[0]) / sample_count


@torch.no_grad()
def march_rays(
    rays_o: torch.Tensor,
    rays_d: torch.Tensor,
    config: DVRConfig,
) -> Dict[str, torch.Tensor]:
    """
    March a batch of rays through the density field.

    Parameters
    ----------
    rays_o : torch.Tensor
        Ray origins, shape (..., 3).
    rays_d : torch.Tensor
        Unit ray directions, shape (..., 3).
    config : DVRConfig
        Scene, light and sampling configuration.

    Returns
    -------
    dict containing:
        rgba : torch.Tensor
            Final colour over the background, shape (..., 4).
        acc : torch.Tensor
            Accumulated alpha before the background blend, shape (...,).
        iterations : torch.Tensor
            Samples taken per ray, shape (...,).
        terminated : torch.Tensor
            Ray reached the termination alpha, shape (...,).
        hit : torch.Tensor
            Ray intersects the bounding box, shape (...,).
        t_near, t_far : torch.Tensor
            Box entry/exit distances, shape (...,).
    """
    check_last_dim(rays_o, 3, "rays_o")
    check_last_dim(rays_d, 3, "rays_d")

    scene = config.scene
    rc = config.render
    batch_shape = rays_d.shape[:-1]
    rays_o = rays_o.reshape(-1, 3)
    rays_d = rays_d.reshape(-1, 3)
    n_rays = rays_d.shape[0]

    hit, t_near, t_far = intersect_box(rays_o, rays_d, scene.bb_min, scene.bb_max)

    step = step_length(scene, rc.sample_count)
    gradient_fn = get_gradient_fn(rc.gradient_scheme)
    occupancy_fn = partial(occupancy, scene=scene)

    pos = ray_start(rays_o, rays_d, t_near)
    accum = torch.zeros(n_rays, 4, dtype=rays_d.dtype, device=rays_d.device)
    iterations = torch.zeros(n_rays, dtype=torch.long, device=rays_d.device)
    terminated = torch.zeros(n_rays, dtype=torch.bool, device=rays_d.device)
    active = hit.clone()

    for _ in range(rc.sample_count):
        opaque = accum[:, 3] > rc.termination_alpha
        terminated |= active & opaque
        active &= ~opaque
        if not bool(active.any()):
            break

        # The first sample sits one step past the entry point
        pos = torch.where(active[:, None], pos + rays_d * step, pos)
        iterations += active.long()

        value = density(pos, scene)
        shade = active & (value > 0)
        if not bool(shade.any()):
            continue

        p = pos[shade]
        color = classify(value[shade], scene, rc.eps)
        normal = -gradient_fn(occupancy_fn, p, rc.voxel_width)
        shaded = blinn_phong(color, normal, -rays_d[shade], config.light)

        # Premultiply, then composite front to back
        sample = torch.cat([shaded[:, :3] * shaded[:, 3:4], shaded[:, 3:4]], dim=-1)
        accum[shade] = accum[shade] + sample * (1.0 - accum[shade][:, 3:4])

    # Rays that turned opaque on their last sample never reach the check above
    terminated |= active & (accum[:, 3] > rc.termination_alpha)

    background = as_vec(rc.background, accum)
    rgba = composite_background(accum, background, rc.background_blend)

    return {
        "rgba": rgba.reshape(*batch_shape, 4),
        "acc": accum[:, 3].reshape(batch_shape),
        "iterations": iterations.reshape(batch_shape),
        "terminated": terminated.reshape(batch_shape),
        "hit": hit.reshape(batch_shape),
        "t_near": t_near.reshape(batch_shape),
        "t_far": t_far.reshape(batch_shape),
    }


class VolumeRenderer(nn.Module):
    """
    Renders rays in independent chunks.

    Chunks share the read-only config and never communicate, so they can
    run on a fixed-size thread pool. Output does not depend on the chunk
    size or the number of workers.
    """

    def __init__(self, config: Optional[DVRConfig] = None, num_workers: int = 0):
        super().__init__()
        self.config = config if config is not None else DVRConfig()
        self.num_workers = num_workers

    def forward(
        self,
        rays_o: torch.Tensor,
        rays_d: torch.Tensor,
        chunk_size: int = 1024 * 16,
    ) -> Dict[str, torch.Tensor]:
        """
        Render rays in chunks.

        Parameters
        ----------
        rays_o : torch.Tensor
            Ray origins, shape (N_rays, 3).
        rays_d : torch.Tensor
            Ray directions, shape (N_rays, 3).
        chunk_size : int
            Maximum rays per march.

        Returns
        -------
        dict
            Per-ray outputs of ``march_rays``.
        """
        N_rays = rays_o.shape[0]

        if N_rays <= chunk_size:
            return march_rays(rays_o, rays_d, self.config)

        chunks = [
            (rays_o[i:i + chunk_size], rays_d[i:i + chunk_size])
            for i in range(0, N_rays, chunk_size)
        ]
        march = partial(self._march_chunk, config=self.config)

        if self.num_workers > 0:
            pool = ThreadPoolExecutor(max_workers=self.num_workers)
            try:
                chunk_results = list(pool.map(march, chunks))
            except BaseException:
                # Abort the whole frame: drop chunks that have not started
                pool.shutdown(wait=False, cancel_futures=True)
                raise
            pool.shutdown(wait=True)
        else:
            chunk_results = [march(chunk) for chunk in chunks]

        all_results = {}
        for chunk_result in chunk_results:
            for key, value in chunk_result.items():
                if key not in all_results:
                    all_results[key] = []
                all_results[key].append(value)

        # Concatenate chunks
        for key in all_results:
            all_results[key] = torch.cat(all_results[key], dim=0)

        return all_results

    @staticmethod
    def _march_chunk(chunk, config: DVRConfig) -> Dict[str, torch.Tensor]:
        chunk_o, chunk_d = chunk
        return march_rays(chunk_o, chunk_d, config)


def render_pixel(
    frag_coord: Sequence[float],
    resolution: Sequence[float],
    time: float,
    config: Optional[DVRConfig] = None,
) -> torch.Tensor:
    """
    Colour of a single pixel.

    Parameters
    ----------
    frag_coord : sequence of float
        Pixel coordinate (x, y), origin at the bottom-left.
    resolution : sequence of float
        Frame size (width, height).
    time : float
        Animation time in seconds.
    config : DVRConfig, optional
        Renderer configuration. Defaults to ``DVRConfig()``.

    Returns
    -------
    torch.Tensor
        RGBA, shape (4,).
    """
    if config is None:
        config = DVRConfig()
    rc = config.render

    frag_coord = torch.tensor(frag_coord, dtype=rc.torch_dtype, device=rc.device)
    resolution = torch.tensor(resolution, dtype=rc.torch_dtype, device=rc.device)
    uv = pixel_to_uv(frag_coord, resolution)
    aspect = float(resolution[0] / resolution[1])

    rays_o, rays_d = generate_rays(uv, aspect, time, config.camera)
    return march_rays(rays_o[None], rays_d[None], config)["rgba"][0]


@torch.no_grad()
def render_frame(
    renderer: VolumeRenderer,
    width: int,
    height: int,
    time: float,
    chunk_size: int = 1024 * 16,
) -> Dict[str, torch.Tensor]:
    """
    Render a whole frame at animation time ``time``.

    Returns
    -------
    dict containing:
        rgba : torch.Tensor
            Image, shape (H, W, 4), row 0 at the top.
        iterations, acc, hit, terminated : torch.Tensor
            Per-pixel diagnostics, shape (H, W).
    """
    config = renderer.config
    rc = config.render

    coords = get_pixel_coords(width, height, dtype=rc.torch_dtype, device=rc.device)
    resolution = torch.tensor([width, height], dtype=rc.torch_dtype, device=rc.device)
    uv = pixel_to_uv(coords, resolution)

    rays_o, rays_d = generate_rays(uv, width / height, time, config.camera)
    outputs = renderer(rays_o.reshape(-1, 3), rays_d.reshape(-1, 3), chunk_size=chunk_size)

    return {
        "rgba": outputs["rgba"].reshape(height, width, 4),
        "iterations": outputs["iterations"].reshape(height, width),
        "acc": outputs["acc"].reshape(height, width),
        "hit": outputs["hit"].reshape(height, width),
        "terminated": outputs["terminated"].reshape(height, width),
    }
