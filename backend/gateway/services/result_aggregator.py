"""
Per-request tally of upload outcomes and its mapping to an HTTP response.
"""
import enum
from dataclasses import dataclass
from typing import List, Tuple

from fastapi import status

from gateway.services.dual_sink_writer import UploadOutcome


class Bucket(str, enum.Enum):
    """Outcome bucket of one field."""
    SUCCESS = "success"  # both sinks
    PARTIAL = "partial"  # exactly one sink
    TOTAL = "total"      # neither sink


def classify(outcome: UploadOutcome) -> Bucket:
    """Map one UploadOutcome to its bucket."""
    if outcome.local_ok and outcome.remote_ok:
        return Bucket.SUCCESS
    if outcome.local_ok or outcome.remote_ok:
        return Bucket.PARTIAL
    return Bucket.TOTAL


@dataclass
class Tally:
    """Bucket counts for one request. Owned and mutated by the caller."""
    success: int = 0
    partial: int = 0
    total: int = 0

    def record(self, bucket: Bucket) -> None:
        if bucket is Bucket.SUCCESS:
            self.success += 1
        elif bucket is Bucket.PARTIAL:
            self.partial += 1
        else:
            self.total += 1

    @property
    def fields(self) -> int:
        return self.success + self.partial + self.total


def _success_phrase(count: int) -> str:
    if count == 1:
        return "1 file uploaded successfully"
    return f"{count} files uploaded successfully"


def render_tally(tally: Tally) -> Tuple[int, str]:
    """
    Turn a finished tally into (status_code, message).

    Any total failure makes the request a 500. Partial failures alone are
    still a 200 since every field reached at least one sink. Zero-valued
    buckets are left out of the message.
    """
    if tally.partial == 0 and tally.total == 0:
        if tally.success == 1:
            return status.HTTP_200_OK, "File uploaded successfully."
        return status.HTTP_200_OK, f"{_success_phrase(tally.success)}."

    phrases: List[str] = []
    if tally.success:
        phrases.append(_success_phrase(tally.success))
    if tally.partial:
        phrases.append(f"{tally.partial} file upload(s) partially failed")
    if tally.total:
        phrases.append(f"{tally.total} file upload(s) totally failed")

    code = status.HTTP_500_INTERNAL_SERVER_ERROR if tally.total else status.HTTP_200_OK
    return code, ", ".join(phrases)
