"""
Centralized Pydantic Data Models for titanscan
"""
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ToolId(str, Enum):
    """Registered tool identifiers (wire values used by clients)."""
    NMAP_SERVICE = "nmap-sV-A-O"
    NMAP_VULN = "nmap-script-vuln"
    NIKTO = "nikto"
    WHATWEB = "whatweb"
    NUCLEI = "nuclei"
    AMASS = "amass"
    HTTPX = "httpx"
    SUBFINDER = "subfinder"
    DNSX = "dnsx"
    NAABU = "naabu"
    WAPPALYZER = "wappalyzer"
    TESTSSL = "testssl"
    FEROXBUSTER = "feroxbuster"
    ZAP_SPIDER = "zap-spider"
    ZAP_ACTIVE = "zap-active"


# Short names accepted by the async job endpoint
TOOL_ALIASES = {
    "nmap-sV": ToolId.NMAP_SERVICE.value,
    "nmap-vuln": ToolId.NMAP_VULN.value,
}


class JobPhase(Enum):
    """Async job lifecycle: (percent, status label)."""
    STARTING = (0, "Starting")
    RESOLVING = (10, "Resolving target")
    RUNNING = (20, "Running")
    ANALYZING = (70, "Analyzing output")
    FINALIZING = (90, "Finalizing report")
    DONE = (100, "Done")
    ERROR = (100, "Error")

    @property
    def percent(self) -> int:
        return self.value[0]

    @property
    def label(self) -> str:
        return self.value[1]

    @property
    def is_terminal(self) -> bool:
        return self in (JobPhase.DONE, JobPhase.ERROR)


TERMINAL_STATUSES = frozenset({JobPhase.DONE.label, JobPhase.ERROR.label})


class Vulnerability(BaseModel):
    """Represents a finding extracted from raw tool output"""
    model_config = ConfigDict(extra="allow")

    title: str
    severity: str = "INFO"
    description: str = ""
    remediation: str = ""


class Insights(BaseModel):
    """Structured view of raw scan text produced by the Insight Analyzer"""
    vulnerabilities: List[Vulnerability] = []
    summary: str = ""
    key_points: List[str] = []


class ProgressSnapshot(BaseModel):
    """Externally visible state of an async job at a point in time"""
    model_config = ConfigDict(frozen=True)

    percent: int = Field(0, ge=0, le=100)
    status: str = JobPhase.STARTING.label
    output: str = ""
    vulnerabilities: List[Vulnerability] = []

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ToolInvocationResult(BaseModel):
    """One tool's outcome: sanitized output or an error description"""
    model_config = ConfigDict(frozen=True)

    tool: str
    output: Optional[str] = None
    error: Optional[str] = None
    insights: Insights = Field(default_factory=Insights)

    @property
    def ok(self) -> bool:
        return self.error is None


class AggregateResult(BaseModel):
    """Combined report of a synchronous multi-tool run"""
    target: str
    raw_output: str = ""
    vulnerabilities: List[Vulnerability] = []
    summary: str = ""
    key_points: List[str] = []
    errors: List[str] = []
    record_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_response(self) -> dict:
        if self.errors:
            message = f"Scans completed with some errors for {self.target}"
        else:
            message = f"Scans completed successfully for {self.target}!"
        response = {
            "message": message,
            "rawOutput": self.raw_output,
            "vulnerabilities": [v.model_dump() for v in self.vulnerabilities],
            "summary": self.summary,
            "keyPoints": self.key_points,
            "scanId": self.record_id,
            "timestamp": self.timestamp.isoformat(timespec="seconds"),
        }
        if self.errors:
            response["errors"] = self.errors
        return response


# --- Request bodies ---

class ScanStartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    scan_type: Optional[str] = Field(None, alias="scanType")
    target: Optional[str] = None


class AggregateScanRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    target_url: Optional[str] = Field(None, alias="targetUrl")
    selected_tools: Optional[List[str]] = Field(None, alias="selectedTools")


class ZapScanRequest(BaseModel):
    target: Optional[str] = None
    type: str = "spider"  # spider, active
