"""
Command-line host for the volume renderer.

Render the scene and:
- Save a single frame at a given animation time
- Render an orbit animation (frames + mp4 via ffmpeg)
- Compare gradient schemes on the same frame
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import math
import subprocess
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import torch

from .config import DVRConfig, GradientScheme, BLEND_MODES
from .logger import RenderLogger, compute_frame_metrics
from .metrics import compute_all_metrics
from .rendering import VolumeRenderer, render_frame
from .utils import save_image


def build_config(args: argparse.Namespace) -> DVRConfig:
    """Load the base config (JSON or defaults) and apply CLI overrides."""
    config = DVRConfig.load(args.config) if args.config is not None else DVRConfig()

    overrides = {}
    if args.scheme is not None:
        overrides["gradient_scheme"] = args.scheme
    if args.sample_count is not None:
        overrides["sample_count"] = args.sample_count
    if args.blend is not None:
        overrides["background_blend"] = args.blend
    overrides["device"] = args.device

    # replace() re-runs validation
    config.render = dataclasses.replace(config.render, **overrides)
    return config


def generate_output_folder_name(mode: str, config: DVRConfig) -> str:
    """
    Generate informative output folder name.

    Format: {mode}_{scheme}_{timestamp}
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"{mode}_{config.render.gradient_scheme.value}_{timestamp}"


def render_and_log(
    renderer: VolumeRenderer,
    logger: RenderLogger,
    width: int,
    height: int,
    t: float,
    frame: int,
    tag: str = "frame",
    chunk_size: int = 1024 * 16,
) -> Dict[str, torch.Tensor]:
    """Render one frame, record its statistics and save its images."""
    start = time.time()
    outputs = render_frame(renderer, width, height, t, chunk_size=chunk_size)
    render_time = time.time() - start

    metrics = compute_frame_metrics(outputs, frame, t, render_time)
    logger.log_frame(metrics)
    logger.log_images(tag, outputs, frame, max_iterations=renderer.config.render.sample_count)

    print(
        f"  Frame {frame}: t={t:.3f}s, {render_time:.2f}s, "
        f"hit={metrics.hit_fraction:.1%}, mean iters={metrics.mean_iterations:.1f}"
    )
    return outputs


def orbit_times(n_frames: int, n_orbits: float, angular_speed: float) -> List[float]:
    """Evenly spaced animation times covering ``n_orbits`` camera orbits."""
    period = 2.0 * math.pi / angular_speed
    return [i / n_frames * n_orbits * period for i in range(n_frames)]


def render_orbit(
    renderer: VolumeRenderer,
    logger: RenderLogger,
    width: int,
    height: int,
    n_frames: int,
    n_orbits: float = 1.0,
    fps: int = 30,
    chunk_size: int = 1024 * 16,
) -> Path:
    """
    Render an orbit animation and assemble it into a video.

    Returns the video path, or the frames directory if ffmpeg failed.
    """
    times = orbit_times(n_frames, n_orbits, renderer.config.camera.angular_speed)
    print(f"Rendering {n_frames} frames...")

    for i, t in enumerate(times):
        render_and_log(renderer, logger, width, height, t, i, chunk_size=chunk_size)

    video_path = logger.output_dir / "video.mp4"
    try:
        cmd = [
            "ffmpeg", "-y",
            "-framerate", str(fps),
            "-i", str(logger.images_dir / "frame_%04d.png"),
            "-c:v", "libx264",
            "-pix_fmt", "yuv420p",
            str(video_path)
        ]
        subprocess.run(cmd, check=True, capture_output=True)
        print(f"Video saved to {video_path}")
    except (OSError, subprocess.CalledProcessError) as e:
        print(f"Could not create video (ffmpeg required): {e}")
        print(f"Frames saved to {logger.images_dir}")
        video_path = logger.images_dir

    return video_path


def compare_schemes(
    config: DVRConfig,
    logger: RenderLogger,
    width: int,
    height: int,
    t: float,
    reference: GradientScheme = GradientScheme.CENTRAL,
    num_workers: int = 0,
    chunk_size: int = 1024 * 16,
) -> Dict[str, Dict[str, float]]:
    """
    Render the same frame with every gradient scheme.

    Each image is scored against the ``reference`` scheme and a
    side-by-side strip is saved in scheme order.
    """
    images = {}
    for frame, scheme in enumerate(GradientScheme):
        scheme_config = dataclasses.replace(
            config, render=dataclasses.replace(config.render, gradient_scheme=scheme)
        )
        renderer = VolumeRenderer(scheme_config, num_workers=num_workers)
        print(f"Scheme: {scheme.value}")
        outputs = render_and_log(renderer, logger, width, height, t, frame, tag=scheme.value, chunk_size=chunk_size)
        images[scheme.value] = outputs["rgba"]

    reference_img = images[reference.value]
    results = {name: compute_all_metrics(img, reference_img) for name, img in images.items()}

    strip = torch.cat(list(images.values()), dim=1)
    save_image(strip, logger.output_dir / "comparison.png")

    with open(logger.output_dir / "comparison_metrics.json", 'w') as f:
        json.dump({"reference": reference.value, "metrics": results}, f, indent=2)

    return results


def main(argv: Optional[List[str]] = None) -> Path:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Direct volume renderer for the three-primitive scene",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Single frame at t=0
  python -m dvr.render --mode frame --width 320 --height 240

  # One full camera orbit as a video
  python -m dvr.render --mode orbit --n_frames 120 --fps 30

  # Compare gradient schemes against central differences
  python -m dvr.render --mode compare --reference central

  # Reproduce an earlier run
  python -m dvr.render --config outputs/frame_intermediate_20260101_120000/config.json
        """
    )

    parser.add_argument("--mode", type=str, default="frame",
                        choices=["frame", "orbit", "compare"],
                        help="Render mode")
    parser.add_argument("--config", type=Path, default=None,
                        help="JSON config to start from (defaults built in)")
    parser.add_argument("--output_dir", type=Path, default=None,
                        help="Output directory (auto-generated if not provided)")
    parser.add_argument("--device", type=str, default="cpu",
                        help="Device")
    parser.add_argument("--no_tensorboard", action="store_true",
                        help="Disable TensorBoard logging")

    # Frame options
    frame_group = parser.add_argument_group("Frame Options")
    frame_group.add_argument("--width", type=int, default=320,
                             help="Image width in pixels")
    frame_group.add_argument("--height", type=int, default=240,
                             help="Image height in pixels")
    frame_group.add_argument("--time", type=float, default=0.0,
                             help="Animation time in seconds")

    # Renderer options
    render_group = parser.add_argument_group("Renderer Options")
    render_group.add_argument("--scheme", type=str, default=None,
                              choices=[s.value for s in GradientScheme],
                              help="Gradient scheme (default: intermediate)")
    render_group.add_argument("--sample_count", type=int, default=None,
                              help="Samples per ray (default: 256)")
    render_group.add_argument("--blend", type=str, default=None,
                              choices=list(BLEND_MODES),
                              help="Background blend (default: legacy)")
    render_group.add_argument("--reference", type=str, default="central",
                              choices=[s.value for s in GradientScheme],
                              help="Reference scheme for compare mode")

    # Video options
    video_group = parser.add_argument_group("Video Options")
    video_group.add_argument("--n_frames", type=int, default=120,
                             help="Number of frames for orbit mode")
    video_group.add_argument("--n_orbits", type=float, default=1.0,
                             help="Camera orbits covered by the animation")
    video_group.add_argument("--fps", type=int, default=30,
                             help="Video FPS")

    # Performance options
    perf_group = parser.add_argument_group("Performance Options")
    perf_group.add_argument("--chunk_size", type=int, default=1024 * 16,
                            help="Rays per chunk (default: 16384)")
    perf_group.add_argument("--num_workers", type=int, default=0,
                            help="Threads rendering chunks in parallel (default: 0 = serial)")

    args = parser.parse_args(argv)

    if args.device == "cuda" and not torch.cuda.is_available():
        print("CUDA not available, using CPU")
        args.device = "cpu"

    config = build_config(args)

    output_dir = args.output_dir
    if output_dir is None:
        output_dir = Path("outputs") / generate_output_folder_name(args.mode, config)

    print(f"{'=' * 60}")
    print(f"Volume Render ({args.mode})")
    print(f"  Resolution:      {args.width} x {args.height}")
    print(f"  Gradient scheme: {config.render.gradient_scheme.value}")
    print(f"  Samples per ray: {config.render.sample_count}")
    print(f"  Background:      {config.render.background_blend}")
    print(f"  Output:          {output_dir}")
    print(f"{'=' * 60}\n")

    logger = RenderLogger(output_dir, run_name=args.mode, use_tensorboard=not args.no_tensorboard)
    logger.log_config(config)

    renderer = VolumeRenderer(config, num_workers=args.num_workers)
    extra = {}

    if args.mode == "frame":
        render_and_log(renderer, logger, args.width, args.height, args.time, 0, chunk_size=args.chunk_size)
        result_path = logger.images_dir / "frame_0000.png"

    elif args.mode == "orbit":
        result_path = render_orbit(
            renderer, logger,
            args.width, args.height,
            args.n_frames, args.n_orbits, args.fps,
            chunk_size=args.chunk_size,
        )

    else:
        results = compare_schemes(
            config, logger,
            args.width, args.height, args.time,
            reference=GradientScheme(args.reference),
            num_workers=args.num_workers,
            chunk_size=args.chunk_size,
        )
        print(f"\nScheme comparison (reference: {args.reference}):")
        for name, m in results.items():
            print(f"  {name:16s} MSE={m['mse']:.6f}  PSNR={m['psnr']:.2f} dB")
        extra["comparison"] = results
        result_path = output_dir / "comparison.png"

    logger.save_summary(extra)
    logger.close()

    print(f"Results saved to: {result_path}")
    return result_path


if __name__ == "__main__":
    main()
