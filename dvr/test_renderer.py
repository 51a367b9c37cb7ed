"""
Tests for the camera, ray clipping, shading and the march loop.

Run with: python -m dvr.test_renderer  (or pytest)
"""

import math
import sys

import pytest
import torch

from .config import DVRConfig, SceneConfig, CameraConfig, LightConfig, RenderConfig, GradientScheme
from .camera import orbit_camera, generate_rays
from .rays import get_pixel_coords, pixel_to_uv, intersect_box
from .shading import blinn_phong
from .rendering import (
    VolumeRenderer,
    composite_background,
    march_rays,
    render_frame,
    render_pixel,
    step_length,
)
from .utils import normalize


WHITE = torch.ones(4)
BB_MIN = (-2.0, -2.0, -2.0)
BB_MAX = (2.0, 2.0, 2.0)


def test_orbit_camera():
    """Camera circles at radius 7, height 0.5, with an orthonormal basis."""
    config = CameraConfig()

    state = orbit_camera(0.0, config)
    assert torch.allclose(state.position, torch.tensor([7.0, 0.5, 0.0]))
    assert torch.allclose(state.forward, -normalize(state.position))

    state = orbit_camera(math.pi, config)
    assert torch.allclose(state.position, torch.tensor([0.0, 0.5, 7.0]), atol=1e-5)

    for basis in (state.forward, state.right, state.up):
        assert torch.isclose(basis.norm(), torch.tensor(1.0))
    assert abs(torch.dot(state.right, state.up).item()) < 1e-6
    assert abs(torch.dot(state.right, state.forward).item()) < 1e-6
    assert abs(torch.dot(state.up, state.forward).item()) < 1e-6
    assert state.up[1] > 0


def test_degenerate_camera_raises():
    """A camera sitting on the origin has no view direction."""
    config = CameraConfig(orbit_radius=0.0, height=0.0)
    with pytest.raises(ValueError):
        orbit_camera(0.0, config)


def test_generate_rays():
    config = CameraConfig()
    uv = torch.tensor([[0.5, 0.5], [0.0, 0.0], [1.0, 1.0], [0.25, 0.8]])

    rays_o, rays_d = generate_rays(uv, 4.0 / 3.0, 0.0, config)
    state = orbit_camera(0.0, config)

    assert rays_o.shape == (4, 3)
    assert torch.allclose(rays_o, state.position.expand(4, 3))
    assert torch.allclose(rays_d.norm(dim=-1), torch.ones(4))
    # The centre ray looks straight at the target
    assert torch.allclose(rays_d[0], state.forward, atol=1e-6)
    # Vertical half-angle of the top-right corner ray is fovy / 2
    up_component = torch.dot(rays_d[2], state.up) / torch.dot(rays_d[2], state.forward)
    assert math.isclose(up_component.item(), math.tan(config.fovy / 2), rel_tol=1e-5)


def test_pixel_coords():
    coords = get_pixel_coords(4, 2)
    assert coords.shape == (2, 4, 2)
    # Row 0 is the top of the image
    assert torch.equal(coords[0, 0], torch.tensor([0.5, 1.5]))
    assert torch.equal(coords[1, 3], torch.tensor([3.5, 0.5]))

    with pytest.raises(ValueError):
        get_pixel_coords(0, 2)


def test_pixel_to_uv():
    uv = pixel_to_uv(torch.tensor([32.0, 16.0]), torch.tensor([64.0, 64.0]))
    assert torch.equal(uv, torch.tensor([0.5, 0.25]))

    with pytest.raises(ValueError):
        pixel_to_uv(torch.tensor([1.0, 1.0]), torch.tensor([0.0, 64.0]))


def test_intersect_box_pointing_away():
    rays_o = torch.tensor([[3.0, 0.0, 0.0], [5.0, 5.0, 5.0]])
    rays_d = normalize(torch.tensor([[1.0, 0.0, 0.0], [1.0, 1.0, 1.0]]))

    hit, _, _ = intersect_box(rays_o, rays_d, BB_MIN, BB_MAX)
    assert not hit.any()


def test_intersect_box_inside():
    rays_o = torch.tensor([[0.0, 0.0, 0.0], [1.5, -1.0, 0.5]])
    rays_d = normalize(torch.tensor([[1.0, 2.0, 3.0], [-1.0, 0.0, 0.2]]))

    hit, t_near, t_far = intersect_box(rays_o, rays_d, BB_MIN, BB_MAX)
    assert hit.all()
    assert (t_near < 0).all()
    assert (t_far > 0).all()


def test_intersect_box_zero_direction_component():
    """Axis-parallel rays rely on IEEE infinities, not special cases."""
    rays_o = torch.tensor([
        [0.0, 0.0, -5.0],   # inside the x/y slabs
        [3.0, 0.0, -5.0],   # outside the x slab
        [2.0, 0.0, -5.0],   # exactly on the x = 2 plane (0 / 0)
    ])
    rays_d = torch.tensor([[0.0, 0.0, 1.0]]).expand(3, 3)

    hit, t_near, t_far = intersect_box(rays_o, rays_d, BB_MIN, BB_MAX)
    assert hit.tolist() == [True, False, False]
    assert t_near[0] == 3.0 and t_far[0] == 7.0


def test_slab_reduction_forms_agree():
    """max(max(x, y), max(x, z)) is the same three-way max."""
    t_min = torch.randn(100, 3)
    legacy = torch.maximum(
        torch.maximum(t_min[:, 0], t_min[:, 1]),
        torch.maximum(t_min[:, 0], t_min[:, 2]),
    )
    assert torch.equal(legacy, t_min.amax(dim=-1))


def test_blinn_phong_zero_normal():
    """A zero normal leaves only the ambient term."""
    color = torch.tensor([[0.0, 1.0, 0.0, 1.0]])
    shaded = blinn_phong(color, torch.zeros(1, 3), torch.tensor([[1.0, 0.0, 0.0]]), LightConfig())
    assert torch.equal(shaded, torch.tensor([[0.0, 0.5, 0.0, 1.0]]))


def test_blinn_phong_facing_light():
    """Normal and eye along the light: full diffuse and specular, clamped."""
    light = LightConfig()
    towards_light = normalize(-torch.tensor([light.direction]))
    color = torch.tensor([[1.0, 0.0, 0.0, 1.0]])

    shaded = blinn_phong(color, towards_light * 3.0, towards_light, light)
    assert torch.allclose(shaded, torch.tensor([[1.0, 0.7, 0.7, 1.0]]), atol=1e-4)


def test_blinn_phong_alpha():
    colors = torch.tensor([[0.0, 0.0, 0.0, 1.0], [0.0, 0.0, 1.0, 1.0]])
    normals = torch.randn(2, 3)
    views = torch.randn(2, 3)
    shaded = blinn_phong(colors, normals, views, LightConfig())
    assert torch.equal(shaded[:, 3], torch.ones(2))
    assert (shaded >= 0).all() and (shaded <= 1).all()


def test_composite_background():
    accum = torch.tensor([0.2, 0.1, 0.0, 0.5])
    legacy = composite_background(accum, WHITE, "legacy")
    over = composite_background(accum, WHITE, "over")

    assert torch.allclose(legacy, torch.tensor([0.6, 0.55, 0.5, 0.75]))
    assert torch.allclose(over, torch.tensor([0.7, 0.6, 0.5, 1.0]))

    with pytest.raises(ValueError):
        composite_background(accum, WHITE, "bogus")


def test_march_miss_returns_background():
    config = DVRConfig()
    rays_o = torch.tensor([[5.0, 5.0, 5.0]])
    rays_d = normalize(torch.tensor([[1.0, 1.0, 1.0]]))

    out = march_rays(rays_o, rays_d, config)
    assert torch.equal(out["rgba"][0], WHITE)
    assert out["iterations"][0] == 0
    assert not out["hit"][0]


def test_march_empty_box_runs_all_samples():
    """A ray through the box that misses every primitive takes every sample."""
    config = DVRConfig()
    rays_o = torch.tensor([[-5.0, 1.8, 0.0]])
    rays_d = torch.tensor([[1.0, 0.0, 0.0]])

    out = march_rays(rays_o, rays_d, config)
    assert out["hit"][0]
    assert out["iterations"][0] == config.render.sample_count
    assert not out["terminated"][0]
    assert torch.equal(out["rgba"][0], WHITE)


def test_march_early_termination():
    """Starting in the triple overlap, the first sample is opaque black."""
    config = DVRConfig()
    rays_o = torch.zeros(1, 3)
    rays_d = torch.tensor([[-1.0, 0.0, 0.0]])

    out = march_rays(rays_o, rays_d, config)
    assert out["hit"][0]
    assert out["t_near"][0] < 0 < out["t_far"][0]
    assert out["iterations"][0] == 1
    assert out["iterations"][0] < config.render.sample_count
    assert out["terminated"][0]
    assert torch.equal(out["rgba"][0], torch.tensor([0.0, 0.0, 0.0, 1.0]))


def test_render_pixel_center_hits_box2():
    """At t=0 the centre ray enters box2 through its +x face first."""
    rgba = render_pixel((32.0, 32.0), (64.0, 64.0), 0.0)
    assert torch.allclose(rgba, torch.tensor([0.0, 0.5, 0.0, 1.0]), atol=1e-4)


def test_render_pixel_miss():
    rgba = render_pixel((0.5, 200.0), (800.0, 400.0), 0.0)
    assert torch.equal(rgba, WHITE)


def test_render_pixel_is_deterministic():
    first = render_pixel((20.5, 30.5), (64.0, 48.0), 1.7)
    second = render_pixel((20.5, 30.5), (64.0, 48.0), 1.7)
    assert torch.equal(first, second)


def test_render_pixel_zero_resolution():
    with pytest.raises(ValueError):
        render_pixel((1.0, 1.0), (0.0, 0.0), 0.0)


def test_render_frame():
    renderer = VolumeRenderer(DVRConfig())
    out = render_frame(renderer, 16, 12, 0.0)

    assert out["rgba"].shape == (12, 16, 4)
    assert out["iterations"].shape == (12, 16)
    assert torch.isfinite(out["rgba"]).all()
    assert out["hit"].any() and not out["hit"].all()
    # Centre pixels see the volume, corners see the background
    assert out["acc"][6, 8] > 0.99
    assert torch.equal(out["rgba"][0, 0], WHITE)


def test_chunking_and_workers_do_not_change_output():
    config = DVRConfig()
    coords = get_pixel_coords(12, 10)
    uv = pixel_to_uv(coords, torch.tensor([12.0, 10.0]))
    rays_o, rays_d = generate_rays(uv, 1.2, 0.8, config.camera)
    rays_o, rays_d = rays_o.reshape(-1, 3), rays_d.reshape(-1, 3)

    whole = VolumeRenderer(config)(rays_o, rays_d, chunk_size=1024)
    chunked = VolumeRenderer(config, num_workers=3)(rays_o, rays_d, chunk_size=7)

    assert torch.allclose(whole["rgba"], chunked["rgba"], atol=1e-6)
    assert torch.equal(whole["iterations"], chunked["iterations"])
    assert torch.equal(whole["hit"], chunked["hit"])


def test_all_gradient_schemes_render():
    for scheme in GradientScheme:
        config = DVRConfig(render=RenderConfig(gradient_scheme=scheme))
        out = render_frame(VolumeRenderer(config), 8, 8, 0.5)
        assert torch.isfinite(out["rgba"]).all(), scheme
        assert (out["rgba"] >= 0).all() and (out["rgba"] <= 1).all(), scheme


def test_blend_modes_agree_on_binary_coverage():
    """Shaded samples are opaque, so coverage is 0 or 1 and both blends match."""
    legacy = render_frame(VolumeRenderer(DVRConfig()), 10, 8, 0.0)
    over_config = DVRConfig(render=RenderConfig(background_blend="over"))
    over = render_frame(VolumeRenderer(over_config), 10, 8, 0.0)

    assert ((legacy["acc"] == 0) | (legacy["acc"] == 1)).all()
    assert torch.allclose(legacy["rgba"], over["rgba"])


def test_first_sample_is_one_step_past_entry():
    """The entry point lies in box2 alone; the first sample is in the triple overlap."""
    config = DVRConfig(
        scene=SceneConfig(bb_max=(0.9, 2.0, 2.0)),
        render=RenderConfig(sample_count=4),
    )
    rays_o = torch.tensor([[5.0, 0.0, 0.0]])
    rays_d = torch.tensor([[-1.0, 0.0, 0.0]])

    out = march_rays(rays_o, rays_d, config)
    assert torch.isclose(out["t_near"][0], torch.tensor(4.1))
    assert out["iterations"][0] == 1
    assert torch.equal(out["rgba"][0], torch.tensor([0.0, 0.0, 0.0, 1.0]))


def test_step_uses_x_extent_only():
    """A box longer in y and z still steps by its x extent."""
    scene = SceneConfig(bb_min=(-1.5, -4.0, -4.0), bb_max=(1.5, 4.0, 4.0))
    assert step_length(scene, 3) == 1.0

    config = DVRConfig(scene=scene, render=RenderConfig(sample_count=3))
    rays_o = torch.tensor([[5.0, 0.0, 0.0]])
    rays_d = torch.tensor([[-1.0, 0.0, 0.0]])

    # Entry at x = 1.5, first sample at x = 0.5 inside box2 and the sphere
    out = march_rays(rays_o, rays_d, config)
    assert out["iterations"][0] == 1
    assert torch.equal(out["rgba"][0], torch.tensor([0.0, 0.0, 0.0, 1.0]))


def test_opaque_on_last_sample_is_terminated():
    config = DVRConfig(render=RenderConfig(sample_count=1))
    rays_o = torch.tensor([[1.9, 1.9, 1.9]])
    rays_d = normalize(torch.tensor([[-1.0, -1.0, -1.0]]))

    # The only sample lands in box1 + box2
    out = march_rays(rays_o, rays_d, config)
    assert out["iterations"][0] == 1
    assert out["terminated"][0]
    assert torch.equal(out["rgba"][0], torch.tensor([0.5, 0.0, 0.0, 1.0]))


def main():
    """Run all tests."""
    print("=" * 60)
    print("Renderer Tests")
    print("=" * 60 + "\n")

    tests = [
        test_orbit_camera,
        test_degenerate_camera_raises,
        test_generate_rays,
        test_pixel_coords,
        test_pixel_to_uv,
        test_intersect_box_pointing_away,
        test_intersect_box_inside,
        test_intersect_box_zero_direction_component,
        test_slab_reduction_forms_agree,
        test_blinn_phong_zero_normal,
        test_blinn_phong_facing_light,
        test_blinn_phong_alpha,
        test_composite_background,
        test_march_miss_returns_background,
        test_march_empty_box_runs_all_samples,
        test_march_early_termination,
        test_render_pixel_center_hits_box2,
        test_render_pixel_miss,
        test_render_pixel_is_deterministic,
        test_render_pixel_zero_resolution,
        test_render_frame,
        test_chunking_and_workers_do_not_change_output,
        test_all_gradient_schemes_render,
        test_blend_modes_agree_on_binary_coverage,
        test_first_sample_is_one_step_past_entry,
        test_step_uses_x_extent_only,
        test_opaque_on_last_sample_is_terminated,
    ]
    try:
        for test in tests:
            test()
            print(f"  ✓ {test.__name__}")
    except Exception as e:
        print(f"\n✗ Test failed: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)

    print("\nAll renderer tests passed! ✓")


if __name__ == "__main__":
    main()
