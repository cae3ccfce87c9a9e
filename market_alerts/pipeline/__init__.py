"""Pipeline orchestration: pack loading, directory scan, matching, and digest delivery."""

from .models import DeliveryFailure, DeliveryReport, RunSession
from .runner import DeliveryPipeline, build_pack_loader

__all__ = [
    "DeliveryFailure",
    "DeliveryPipeline",
    "DeliveryReport",
    "RunSession",
    "build_pack_loader",
]
