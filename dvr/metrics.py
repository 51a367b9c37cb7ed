"""
Image comparison metrics.

Used to compare renders across gradient schemes or blend modes.
"""

from __future__ import annotations

from typing import Dict

import torch


def compute_mse(pred: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    """Compute Mean Squared Error."""
    return torch.mean((pred - target) ** 2)


def compute_psnr(
    pred: torch.Tensor,
    target: torch.Tensor,
    max_val: float = 1.0,
) -> torch.Tensor:
    """
    Compute Peak Signal-to-Noise Ratio.

    Parameters
    ----------
    pred : torch.Tensor
        Rendered image.
    target : torch.Tensor
        Reference image.
    max_val : float
        Maximum possible value.

    Returns
    -------
    torch.Tensor
        PSNR in dB, inf for identical images.
    """
    mse = compute_mse(pred, target)
    if mse == 0:
        return torch.tensor(float('inf'))
    return 20.0 * torch.log10(torch.tensor(max_val)) - 10.0 * torch.log10(mse)


def compute_all_metrics(pred: torch.Tensor, target: torch.Tensor) -> Dict[str, float]:
    """MSE and PSNR over the colour channels, as floats."""
    pred = pred[..., :3].float()
    target = target[..., :3].float()
    return {
        "mse": compute_mse(pred, target).item(),
        "psnr": compute_psnr(pred, target).item(),
    }
