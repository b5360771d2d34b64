"""Dispatcher result and trigger response envelope models."""

from typing import Literal, Optional

from pydantic import BaseModel, Field

DetailStatus = Literal["sent", "pending", "failed"]

SchedulerErrorCode = Literal[
    "UNAUTHORIZED",
    "INVALID_REQUEST",
    "PROCESSING_ERROR",
    "DATABASE_ERROR",
    "SMTP_ERROR",
]


class ProcessingDetail(BaseModel):
    """Outcome for one scheduled email within a batch."""

    email_id: str
    status: DetailStatus
    error: Optional[str] = None
    processing_time_ms: Optional[float] = None


class DispatchResult(BaseModel):
    """Summary of one dispatcher invocation. processed == sent + skipped + failed."""

    processed: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    details: list[ProcessingDetail] = Field(default_factory=list)

    def record(self, detail: ProcessingDetail) -> None:
        self.details.append(detail)
        self.processed += 1
        if detail.status == "sent":
            self.sent += 1
        elif detail.status == "failed":
            self.failed += 1
        else:
            self.skipped += 1


class SchedulerError(BaseModel):
    code: SchedulerErrorCode
    message: str
    details: Optional[str] = None


class SchedulerResponse(BaseModel):
    """JSON envelope returned by the trigger endpoint."""

    success: bool
    message: str
    timestamp: str
    data: Optional[DispatchResult] = None
    error: Optional[SchedulerError] = None
