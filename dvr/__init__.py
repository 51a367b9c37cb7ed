"""
dvr: direct volume renderer for an analytic three-primitive scene.

This package casts one ray per pixel through a bounded density field,
classifies samples with a transfer function, shades them with
gradient-based Blinn-Phong lighting and composites front to back.
"""

__version__ = "0.1.0"

from .config import (
    DVRConfig,
    SceneConfig,
    CameraConfig,
    LightConfig,
    RenderConfig,
    Primitive,
    GradientScheme,
)
from .primitives import point_in_sphere, point_in_box
from .field import density, occupancy, classify
from .gradients import (
    central_difference,
    intermediate_difference,
    sobel,
    get_gradient_fn,
    estimate_gradient,
)
from .camera import CameraState, orbit_camera, generate_rays
from .rays import get_pixel_coords, pixel_to_uv, intersect_box
from .shading import blinn_phong
from .rendering import VolumeRenderer, march_rays, step_length, render_pixel, render_frame
from .metrics import compute_mse, compute_psnr, compute_all_metrics
from .logger import RenderLogger, FrameMetrics, compute_frame_metrics

__all__ = [
    # Config
    "DVRConfig",
    "SceneConfig",
    "CameraConfig",
    "LightConfig",
    "RenderConfig",
    "Primitive",
    "GradientScheme",
    # Scene
    "point_in_sphere",
    "point_in_box",
    "density",
    "occupancy",
    "classify",
    # Gradients
    "central_difference",
    "intermediate_difference",
    "sobel",
    "get_gradient_fn",
    "estimate_gradient",
    # Camera and rays
    "CameraState",
    "orbit_camera",
    "generate_rays",
    "get_pixel_coords",
    "pixel_to_uv",
    "intersect_box",
    # Shading and rendering
    "blinn_phong",
    "VolumeRenderer",
    "march_rays",
    "step_length",
    "render_pixel",
    "render_frame",
    # Metrics
    "compute_mse",
    "compute_psnr",
    "compute_all_metrics",
    # Logging
    "RenderLogger",
    "FrameMetrics",
    "compute_frame_metrics",
]
