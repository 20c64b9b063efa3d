from .admin import QueueActionResponse, SendRequest, SendResponse, StatusResponse
from .health import DiagnosticCheck, DiagnosticsResponse, HealthReportResponse, LivenessResponse

__all__ = [
    "DiagnosticCheck",
    "DiagnosticsResponse",
    "HealthReportResponse",
    "LivenessResponse",
    "QueueActionResponse",
    "SendRequest",
    "SendResponse",
    "StatusResponse",
]
