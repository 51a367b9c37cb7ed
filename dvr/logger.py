"""
Run logging for frame rendering.

Supports:
- TensorBoard logging (if installed)
- CSV logging of per-frame statistics
- JSON config and summary files
"""

from __future__ import annotations

import csv
import json
import time
from dataclasses import dataclass, asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import torch

from .utils import iterations_to_colormap, save_image


@dataclass
class FrameMetrics:
    """Statistics for one rendered frame."""
    frame: int
    time: float
    width: int
    height: int
    render_time: float = 0.0
    rays_per_sec: float = 0.0
    hit_fraction: float = 0.0
    mean_iterations: float = 0.0
    max_iterations: int = 0
    early_terminated_fraction: float = 0.0
    mean_alpha: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def compute_frame_metrics(
    outputs: Dict[str, torch.Tensor],
    frame: int,
    time: float,
    render_time: float,
) -> FrameMetrics:
    """Derive ``FrameMetrics`` from the output of ``render_frame``."""
    height, width = outputs["iterations"].shape
    n_rays = height * width
    iterations = outputs["iterations"].float()

    return FrameMetrics(
        frame=frame,
        time=time,
        width=width,
        height=height,
        render_time=render_time,
        rays_per_sec=n_rays / render_time if render_time > 0 else 0.0,
        hit_fraction=outputs["hit"].float().mean().item(),
        mean_iterations=iterations.mean().item(),
        max_iterations=int(outputs["iterations"].max().item()),
        early_terminated_fraction=outputs["terminated"].float().mean().item(),
        mean_alpha=outputs["acc"].float().mean().item(),
    )


class TensorBoardLogger:
    """TensorBoard logging wrapper."""

    def __init__(self, log_dir: Path):
        self.log_dir = log_dir
        self.writer = None
        self._available = None

    @property
    def available(self) -> bool:
        if self._available is None:
            try:
                from torch.utils.tensorboard import SummaryWriter
                self.writer = SummaryWriter(self.log_dir)
                self._available = True
            except ImportError:
                print("TensorBoard not available. Install with: pip install tensorboard")
                self._available = False
        return self._available

    def log_scalar(self, tag: str, value: float, step: int):
        if self.available:
            self.writer.add_scalar(tag, value, step)

    def log_image(self, tag: str, img: torch.Tensor, step: int):
        """Log image tensor (H, W, C) in [0, 1]."""
        if self.available:
            img = img[..., :3].permute(2, 0, 1)
            self.writer.add_image(tag, img, step)

    def close(self):
        if self.writer is not None:
            self.writer.close()


class CSVLogger:
    """CSV logging of per-frame statistics."""

    def __init__(self, log_dir: Path):
        self.log_dir = log_dir
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.frame_file = log_dir / "frame_metrics.csv"
        self._writer = None
        self._file_handle = None

    def log_frame(self, metrics: FrameMetrics):
        data = metrics.to_dict()
        if self._writer is None:
            self._file_handle = open(self.frame_file, 'w', newline='')
            self._writer = csv.DictWriter(self._file_handle, fieldnames=list(data.keys()))
            self._writer.writeheader()
        self._writer.writerow(data)
        self._file_handle.flush()

    def close(self):
        if self._file_handle:
            self._file_handle.close()


class RenderLogger:
    """
    Run logger combining all logging backends.

    Usage:
        logger = RenderLogger(output_dir)
        logger.log_config(config)

        # Per frame
        logger.log_frame(metrics)
        logger.log_images("frame", outputs, frame_index)

        # End of run
        logger.save_summary()
        logger.close()
    """

    def __init__(
        self,
        output_dir: Path,
        run_name: str = "render",
        use_tensorboard: bool = True,
    ):
        self.output_dir = Path(output_dir)
        self.run_name = run_name
        self.output_dir.mkdir(parents=True, exist_ok=True)

        self.logs_dir = self.output_dir / "logs"
        self.images_dir = self.output_dir / "images"
        self.logs_dir.mkdir(exist_ok=True)
        self.images_dir.mkdir(exist_ok=True)

        self.csv_logger = CSVLogger(self.logs_dir)
        self.tb_logger = TensorBoardLogger(self.logs_dir / "tensorboard") if use_tensorboard else None

        self.frame_history: List[FrameMetrics] = []
        self.start_time = time.time()

        self.metadata = {
            "run_name": run_name,
            "start_time": datetime.now().isoformat(),
            "output_dir": str(output_dir),
        }

    def log_frame(self, metrics: FrameMetrics):
        """Log frame statistics."""
        self.frame_history.append(metrics)
        self.csv_logger.log_frame(metrics)

        if self.tb_logger and self.tb_logger.available:
            self.tb_logger.log_scalar("frame/render_time", metrics.render_time, metrics.frame)
            self.tb_logger.log_scalar("frame/rays_per_sec", metrics.rays_per_sec, metrics.frame)
            self.tb_logger.log_scalar("frame/hit_fraction", metrics.hit_fraction, metrics.frame)
            self.tb_logger.log_scalar("frame/mean_iterations", metrics.mean_iterations, metrics.frame)
            self.tb_logger.log_scalar("frame/early_terminated", metrics.early_terminated_fraction, metrics.frame)

    def log_images(
        self,
        tag: str,
        outputs: Dict[str, torch.Tensor],
        frame: int,
        max_iterations: Optional[int] = None,
    ) -> Path:
        """
        Save the colour image and the iteration heat map of a frame.

        Returns
        -------
        Path
            Path of the saved colour image.
        """
        rgba = outputs["rgba"]
        heat = iterations_to_colormap(outputs["iterations"], max_iterations)

        image_path = self.images_dir / f"{tag}_{frame:04d}.png"
        save_image(rgba, image_path)
        save_image(heat, self.images_dir / f"{tag}_iterations_{frame:04d}.png")

        if self.tb_logger and self.tb_logger.available:
            self.tb_logger.log_image(f"{tag}/color", rgba.cpu(), frame)
            self.tb_logger.log_image(f"{tag}/iterations", heat, frame)

        return image_path

    def log_config(self, config: Any):
        """Log run configuration."""
        if hasattr(config, "to_dict"):
            config_dict = config.to_dict()
        else:
            config_dict = config

        self.metadata["config"] = config_dict

        config_path = self.output_dir / "config.json"
        with open(config_path, 'w') as f:
            json.dump(config_dict, f, indent=2, default=str)

    def save_summary(self, extra: Optional[Dict[str, Any]] = None):
        """Save run summary including aggregate frame statistics."""
        self.metadata["end_time"] = datetime.now().isoformat()
        self.metadata["total_time_seconds"] = time.time() - self.start_time
        self.metadata["total_frames"] = len(self.frame_history)

        if self.frame_history:
            n = len(self.frame_history)
            self.metadata["mean_render_time"] = sum(m.render_time for m in self.frame_history) / n
            self.metadata["mean_rays_per_sec"] = sum(m.rays_per_sec for m in self.frame_history) / n
            self.metadata["mean_iterations"] = sum(m.mean_iterations for m in self.frame_history) / n
            self.metadata["max_iterations"] = max(m.max_iterations for m in self.frame_history)

        if extra:
            self.metadata.update(extra)

        summary_path = self.output_dir / "summary.json"
        with open(summary_path, 'w') as f:
            json.dump(self.metadata, f, indent=2, default=str)

        print(f"\nRun summary saved to {summary_path}")

    def close(self):
        """Close all loggers."""
        self.csv_logger.close()
        if self.tb_logger:
            self.tb_logger.close()
