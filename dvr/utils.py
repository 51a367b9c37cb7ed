"""
Utility functions shared by the renderer and the host tooling.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import torch
from PIL import Image


def as_vec(values: Sequence[float], like: torch.Tensor) -> torch.Tensor:
    """Build a constant tensor matching the dtype and device of ``like``."""
    return torch.tensor(values, dtype=like.dtype, device=like.device)


def dot(a: torch.Tensor, b: torch.Tensor, keepdim: bool = False) -> torch.Tensor:
    """Dot product over the last dimension."""
    return torch.sum(a * b, dim=-1, keepdim=keepdim)


def normalize(v: torch.Tensor, strict: bool = True) -> torch.Tensor:
    """
    Normalize vectors along the last dimension.

    Parameters
    ----------
    v : torch.Tensor
        Vectors, shape (..., D).
    strict : bool
        If True, a zero-length vector is a caller error and raises.
        If False, zero-length vectors are returned as zero vectors.

    Returns
    -------
    torch.Tensor
        Unit vectors, shape (..., D).

    Raises
    ------
    ValueError
        If ``strict`` and any vector has zero length.
    """
    norm = torch.linalg.norm(v, dim=-1, keepdim=True)
    if strict:
        if bool((norm == 0).any()):
            raise ValueError("Cannot normalize a zero-length vector")
        return v / norm
    return v / torch.clamp(norm, min=torch.finfo(v.dtype).tiny)


def check_last_dim(t: torch.Tensor, size: int, name: str):
    if t.dim() == 0 or t.shape[-1] != size:
        raise ValueError(f"{name} must have shape (..., {size}), got {tuple(t.shape)}")


def to_uint8(img: torch.Tensor) -> np.ndarray:
    """Convert an image in [0, 1] to a uint8 array, dropping alpha."""
    img_np = img[..., :3].detach().cpu().numpy()
    return (img_np * 255).clip(0, 255).astype(np.uint8)


def save_image(img: torch.Tensor, path: Path):
    """Save tensor image (H, W, 3 or 4) to disk."""
    Image.fromarray(to_uint8(img)).save(path)


def iterations_to_colormap(
    iterations: torch.Tensor,
    max_iterations: Optional[int] = None,
) -> torch.Tensor:
    """
    Convert a per-pixel iteration count to a heat map.

    Parameters
    ----------
    iterations : torch.Tensor
        March loop iterations per pixel, shape (H, W).
    max_iterations : int, optional
        Value mapped to the hot end. Defaults to the largest count.

    Returns
    -------
    torch.Tensor
        RGB colormap, shape (H, W, 3).
    """
    iterations = iterations.detach().cpu().float()
    if max_iterations is None:
        max_iterations = max(int(iterations.max().item()), 1)
    norm = torch.clamp(iterations / max_iterations, 0.0, 1.0)

    # Turbo-like colormap
    r = torch.clamp(4 * norm - 1.5, 0, 1)
    g = torch.clamp(2 - 4 * torch.abs(norm - 0.5), 0, 1)
    b = torch.clamp(1.5 - 4 * norm, 0, 1)

    return torch.stack([r, g, b], dim=-1)
