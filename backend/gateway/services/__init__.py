"""
Upload orchestration services.
"""
from gateway.services.dual_sink_writer import DualSinkWriter, UploadOutcome
from gateway.services.result_aggregator import Bucket, Tally, classify, render_tally
from gateway.services.upload_service import UploadResponse, UploadService

__all__ = [
    "DualSinkWriter",
    "UploadOutcome",
    "Bucket",
    "Tally",
    "classify",
    "render_tally",
    "UploadResponse",
    "UploadService",
]
