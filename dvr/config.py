"""
Configuration management for the volume renderer.

Every constant the renderer uses (scene geometry, camera orbit, light,
sampling) lives in one of the dataclasses below. A ``DVRConfig`` is built
once, validated, and then passed read-only into every component.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Tuple

import torch


Vec3 = Tuple[float, float, float]
RGBA = Tuple[float, float, float, float]


class GradientScheme(str, Enum):
    """Finite-difference scheme used to estimate surface normals."""

    CENTRAL = "central"
    INTERMEDIATE = "intermediate"
    SOBEL = "sobel"
    SOBEL_ISOTROPIC = "sobel_isotropic"
    NONE = "none"


BLEND_MODES = ("legacy", "over")
PRIMITIVE_KINDS = ("box", "sphere")
DTYPES = {
    "float32": torch.float32,
    "float64": torch.float64,
}


def _as_vec(values, length: int, name: str) -> tuple:
    values = tuple(float(v) for v in values)
    if len(values) != length:
        raise ValueError(f"{name} must have {length} components, got {len(values)}")
    return values


@dataclass
class Primitive:
    """An analytic density primitive (sphere or axis-aligned box)."""

    kind: str
    center: Vec3
    extent: float  # radius for spheres, half-width for boxes
    density: float

    def __post_init__(self):
        if self.kind not in PRIMITIVE_KINDS:
            raise ValueError(f"Unknown primitive kind '{self.kind}'. Available: {', '.join(PRIMITIVE_KINDS)}")
        self.center = _as_vec(self.center, 3, "center")
        self.extent = float(self.extent)
        self.density = float(self.density)
        if self.extent <= 0:
            raise ValueError(f"Primitive extent must be positive, got {self.extent}")


@dataclass
class SceneConfig:
    """Three overlapping primitives inside an axis-aligned bounding box."""

    box1: Primitive = field(default_factory=lambda: Primitive("box", (-0.25, 0.0, 0.0), 0.75, 0.015))
    box2: Primitive = field(default_factory=lambda: Primitive("box", (0.25, 0.0, 0.0), 0.75, 0.02))
    sphere: Primitive = field(default_factory=lambda: Primitive("sphere", (0.0, 0.25, 0.0), 0.6, 0.03))

    # Clips the march range only; every primitive must lie inside it
    bb_min: Vec3 = (-2.0, -2.0, -2.0)
    bb_max: Vec3 = (2.0, 2.0, 2.0)

    def __post_init__(self):
        for name in ("box1", "box2", "sphere"):
            value = getattr(self, name)
            if isinstance(value, dict):
                setattr(self, name, Primitive(**value))
        self.bb_min = _as_vec(self.bb_min, 3, "bb_min")
        self.bb_max = _as_vec(self.bb_max, 3, "bb_max")
        if any(lo >= hi for lo, hi in zip(self.bb_min, self.bb_max)):
            raise ValueError(f"bb_min {self.bb_min} must be below bb_max {self.bb_max} on every axis")

    @property
    def primitives(self) -> Tuple[Primitive, Primitive, Primitive]:
        return (self.box1, self.box2, self.sphere)


@dataclass
class CameraConfig:
    """Orbiting pinhole camera that always looks at the origin."""

    orbit_radius: float = 7.0
    height: float = 0.5
    angular_speed: float = 0.5  # radians per second of animation time
    fovy_deg: float = 45.0
    z_near: float = 0.1
    world_up: Vec3 = (0.0, 1.0, 0.0)

    def __post_init__(self):
        self.world_up = _as_vec(self.world_up, 3, "world_up")
        if not 0.0 < self.fovy_deg < 180.0:
            raise ValueError(f"fovy_deg must be in (0, 180), got {self.fovy_deg}")
        if self.z_near <= 0:
            raise ValueError(f"z_near must be positive, got {self.z_near}")

    @property
    def fovy(self) -> float:
        return math.radians(self.fovy_deg)


@dataclass
class LightConfig:
    """Single directional light with Blinn-Phong coefficients."""

    direction: Vec3 = (1.0, -1.0, -1.0)  # direction the light travels
    color: Vec3 = (1.0, 1.0, 1.0)
    specular_color: Vec3 = (1.0, 1.0, 1.0)
    ka: float = 0.5
    kd: float = 0.5
    ks: float = 0.7
    shininess: float = 50.0

    def __post_init__(self):
        self.direction = _as_vec(self.direction, 3, "direction")
        self.color = _as_vec(self.color, 3, "color")
        self.specular_color = _as_vec(self.specular_color, 3, "specular_color")
        if all(c == 0.0 for c in self.direction):
            raise ValueError("Light direction must be non-zero")


@dataclass
class RenderConfig:
    """Configuration for ray marching and compositing."""

    sample_count: int = 256
    voxel_width: float = 1.0 / 64.0  # finite-difference offset for gradients
    gradient_scheme: GradientScheme = GradientScheme.INTERMEDIATE

    # Transfer function tolerance
    eps: float = 1e-7

    # Early ray termination
    termination_alpha: float = 0.99

    background: RGBA = (1.0, 1.0, 1.0, 1.0)
    # "legacy" weights the accumulated colour by its own alpha once more
    background_blend: str = "legacy"

    dtype: str = "float32"
    device: str = "cpu"

    def __post_init__(self):
        if isinstance(self.gradient_scheme, str):
            try:
                self.gradient_scheme = GradientScheme(self.gradient_scheme.lower())
            except ValueError:
                available = ", ".join(s.value for s in GradientScheme)
                raise ValueError(
                    f"Unknown gradient scheme '{self.gradient_scheme}'. Available: {available}"
                ) from None
        self.background = _as_vec(self.background, 4, "background")
        if self.sample_count < 1:
            raise ValueError(f"sample_count must be at least 1, got {self.sample_count}")
        if self.voxel_width <= 0:
            raise ValueError(f"voxel_width must be positive, got {self.voxel_width}")
        if self.background_blend not in BLEND_MODES:
            raise ValueError(
                f"Unknown background blend '{self.background_blend}'. Available: {', '.join(BLEND_MODES)}"
            )
        if self.dtype not in DTYPES:
            raise ValueError(f"Unknown dtype '{self.dtype}'. Available: {', '.join(DTYPES)}")

    @property
    def torch_dtype(self) -> torch.dtype:
        return DTYPES[self.dtype]


@dataclass
class DVRConfig:
    """Complete renderer configuration."""

    scene: SceneConfig = field(default_factory=SceneConfig)
    camera: CameraConfig = field(default_factory=CameraConfig)
    light: LightConfig = field(default_factory=LightConfig)
    render: RenderConfig = field(default_factory=RenderConfig)

    def __post_init__(self):
        # Nested dicts come from JSON
        if isinstance(self.scene, dict):
            self.scene = SceneConfig(**self.scene)
        if isinstance(self.camera, dict):
            self.camera = CameraConfig(**self.camera)
        if isinstance(self.light, dict):
            self.light = LightConfig(**self.light)
        if isinstance(self.render, dict):
            self.render = RenderConfig(**self.render)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["render"]["gradient_scheme"] = self.render.gradient_scheme.value
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DVRConfig":
        return cls(**d)

    def save(self, path: Path):
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: Path) -> "DVRConfig":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path, 'r') as f:
            return cls.from_dict(json.load(f))
