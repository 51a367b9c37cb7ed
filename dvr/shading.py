"""
Blinn-Phong shading for volume samples.
"""

from __future__ import annotations

import torch

from .config import LightConfig
from .utils import as_vec, dot, normalize


def blinn_phong(
    color: torch.Tensor,
    normal: torch.Tensor,
    view: torch.Tensor,
    light: LightConfig,
) -> torch.Tensor:
    """
    Shade samples with ambient, diffuse and specular terms.

    Only the ambient term carries coverage (alpha 1); diffuse and specular
    add light but never opacity. The sum is clamped to [0, 1].

    Parameters
    ----------
    color : torch.Tensor
        Diffuse colour from the transfer function, shape (..., 4).
    normal : torch.Tensor
        Surface normal, any length, shape (..., 3). A zero normal gives
        ambient-only shading.
    view : torch.Tensor
        Vector towards the eye, shape (..., 3).
    light : LightConfig
        Light direction, colours and coefficients.

    Returns
    -------
    torch.Tensor
        Shaded colour, shape (..., 4).
    """
    n = normalize(normal, strict=False)
    e = normalize(view, strict=False)
    # Light travels along light.direction; shading needs the vector towards it
    l = normalize(-as_vec(light.direction, color))
    h = normalize(l + e, strict=False)

    light_color = as_vec(light.color, color)
    specular_color = as_vec(light.specular_color, color)
    rgb = color[..., :3]

    n_dot_l = torch.clamp(dot(n, l, keepdim=True), min=0.0)
    n_dot_h = torch.clamp(dot(n, h, keepdim=True), min=0.0)

    ambient = light.ka * light_color * rgb
    diffuse = light.kd * light_color * n_dot_l * rgb
    specular = light.ks * light_color * torch.pow(n_dot_h, light.shininess) * specular_color

    alpha = torch.ones_like(color[..., 3:4])
    shaded = torch.cat([ambient + diffuse + specular, alpha], dim=-1)

    return torch.clamp(shaded, 0.0, 1.0)
