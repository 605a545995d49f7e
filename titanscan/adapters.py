"""
Tool Adapters with a single Tool Registry.

Every scanning capability is exposed through the same ``invoke(target)``
contract, whether it is a local command (nmap, nikto, nuclei, ...) or a
remote scanner polled over HTTP (ZAP). Adding a tool means adding one entry
to ``build_registry``.
"""
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from .config import Settings
from .errors import AdapterEmptyResult, AdapterError
from .executor import CommandRunner
from .models import ToolId
from .poller import ACTIVE_POLL, SPIDER_POLL, PollConfig, RemotePollDriver
from .security import extract_domain, resolve_target, sanitize_output
from .zap import ZapClient

logger = logging.getLogger(__name__)

NO_HOSTS_MARKERS = ("0 hosts up",)
NO_HOSTS_MESSAGE = (
    "No hosts were found up during the scan. The target might be blocking our probes."
)


class ToolAdapter(ABC):
    tool: str

    @abstractmethod
    async def invoke(self, target: str, options: Optional[dict] = None) -> str:
        """Run the tool against ``target`` and return sanitized text output."""


class TargetForm(str, Enum):
    URL = "url"
    DOMAIN = "domain"
    IP = "ip"


@dataclass
class LocalCommandAdapter(ToolAdapter):
    """
    Runs one external command against the target.

    ``empty_result`` set: an empty run is a benign success returning that
    placeholder (discovery/enumeration tools). ``empty_result`` unset: an
    empty run, or one reporting no reachable hosts, raises AdapterEmptyResult
    with ``empty_error`` (host/liveness-dependent tools).
    """
    tool: str
    argv: Tuple[str, ...]
    runner: CommandRunner
    target_form: TargetForm = TargetForm.URL
    stdin_target: bool = False
    privileged: bool = False
    empty_result: Optional[str] = None
    empty_error: Optional[str] = None
    no_hosts_markers: Tuple[str, ...] = ()
    timeout: float = 600.0
    max_output_bytes: int = 10 * 1024 * 1024

    async def _render_target(self, target: str) -> str:
        if self.target_form is TargetForm.IP:
            return await resolve_target(target)
        if self.target_form is TargetForm.DOMAIN:
            return extract_domain(target)
        return target

    async def invoke(self, target: str, options: Optional[dict] = None) -> str:
        try:
            rendered = await self._render_target(target)
            if self.stdin_target:
                argv, stdin_data = list(self.argv), f"{rendered}\n"
            else:
                argv, stdin_data = [arg.format(target=rendered) for arg in self.argv], None

            output = await self.runner.run(
                argv,
                timeout=self.timeout,
                max_output_bytes=self.max_output_bytes,
                stdin_data=stdin_data,
                privileged=self.privileged,
            )
        except AdapterError as e:
            e.tool = e.tool or self.tool
            raise

        if not output or not output.strip():
            if self.empty_result is not None:
                return self.empty_result
            raise AdapterEmptyResult(
                self.empty_error or f"{self.tool} scan produced no output", tool=self.tool
            )

        if any(marker in output for marker in self.no_hosts_markers):
            raise AdapterEmptyResult(self.empty_error or NO_HOSTS_MESSAGE, tool=self.tool)

        return sanitize_output(output)


class ZapMode(str, Enum):
    SPIDER = "spider"
    ACTIVE = "active"


@dataclass
class RemotePolledAdapter(ToolAdapter):
    """ZAP spider/active scan driven through the Remote Poll Driver."""
    tool: str
    client: ZapClient
    mode: ZapMode = ZapMode.SPIDER
    poll_config: Optional[PollConfig] = None
    driver: Optional[RemotePollDriver] = field(default=None, repr=False)

    def __post_init__(self):
        if self.driver is None:
            config = self.poll_config or (ACTIVE_POLL if self.mode is ZapMode.ACTIVE else SPIDER_POLL)
            self.driver = RemotePollDriver(config)

    async def fetch(self, target: str) -> list:
        """Raw best-effort result list (crawled URLs or alerts)."""
        try:
            if self.mode is ZapMode.ACTIVE:
                return await self.driver.run(
                    start=lambda: self.client.start_active_scan(target),
                    status=self.client.active_scan_status,
                    results=lambda handle: self.client.alerts(target),
                )
            return await self.driver.run(
                start=lambda: self.client.start_spider(target),
                status=self.client.spider_status,
                results=self.client.spider_results,
            )
        except AdapterError as e:
            e.tool = e.tool or self.tool
            raise

    async def invoke(self, target: str, options: Optional[dict] = None) -> str:
        results = await self.fetch(target)
        return sanitize_output(json.dumps(results, indent=2))


def build_registry(
    settings: Settings,
    runner: Optional[CommandRunner] = None,
    zap_client: Optional[ZapClient] = None,
) -> Dict[str, ToolAdapter]:
    """Create every registered Tool Adapter keyed by its ToolId value."""
    runner = runner or CommandRunner(use_sudo=settings.use_sudo)
    zap_client = zap_client or ZapClient(
        settings.zap_api, settings.zap_api_key, settings.zap_request_timeout
    )

    def local(tool: ToolId, *argv: str, **kwargs) -> LocalCommandAdapter:
        return LocalCommandAdapter(
            tool=tool.value,
            argv=tuple(argv),
            runner=runner,
            timeout=settings.command_timeout,
            max_output_bytes=settings.max_output_bytes,
            **kwargs,
        )

    adapters = [
        # Host/liveness dependent: empty output is a failure
        local(ToolId.NMAP_SERVICE, "nmap", "-Pn", "-sV", "-A", "-O", "{target}", "-T4", "--privileged",
              target_form=TargetForm.IP, privileged=True,
              empty_error=NO_HOSTS_MESSAGE, no_hosts_markers=NO_HOSTS_MARKERS),
        local(ToolId.NMAP_VULN, "nmap", "-Pn", "-sV", "--script", "vuln", "{target}", "-T4", "--privileged",
              target_form=TargetForm.IP, privileged=True,
              empty_error=NO_HOSTS_MESSAGE, no_hosts_markers=NO_HOSTS_MARKERS),
        local(ToolId.NIKTO, "nikto", "-h", "{target}", "-Format", "txt", "-nointeractive", "-Tuning", "123bde",
              privileged=True, empty_error="Nikto scan produced no output"),
        local(ToolId.WHATWEB, "whatweb", "-a", "3", "--no-errors", "{target}",
              privileged=True, empty_error="WhatWeb scan produced no output"),

        # Discovery/enumeration: empty output is a benign result
        local(ToolId.NUCLEI, "nuclei", "-u", "{target}", "-severity", "low,medium,high,critical",
              "-silent", "-timeout", "5",
              privileged=True, empty_result="No vulnerabilities found by Nuclei"),
        local(ToolId.AMASS, "amass", "enum", "-passive", "-d", "{target}", "-timeout", "10",
              target_form=TargetForm.DOMAIN, empty_result="No subdomains found by Amass"),
        local(ToolId.HTTPX, "httpx", "-title", "-tech-detect", "-status-code", "-content-length",
              "-timeout", "10",
              target_form=TargetForm.DOMAIN, stdin_target=True,
              empty_result="No HTTP information found by httpx"),
        local(ToolId.SUBFINDER, "subfinder", "-d", "{target}", "-silent", "-timeout", "10",
              target_form=TargetForm.DOMAIN, empty_result="No subdomains found by Subfinder"),
        local(ToolId.DNSX, "dnsx", "-resp", "-a", "-aaaa", "-cname", "-mx", "-ns", "-txt", "-silent",
              target_form=TargetForm.DOMAIN, stdin_target=True,
              empty_result="No DNS information found by dnsx"),
        local(ToolId.NAABU, "naabu", "-host", "{target}", "-top-ports", "1000", "-silent", "-timeout", "10000",
              target_form=TargetForm.DOMAIN, empty_result="No open ports found by naabu"),
        local(ToolId.WAPPALYZER, "wappalyzer", "{target}",
              empty_result="No technology stack detected by Wappalyzer"),
        local(ToolId.TESTSSL, "testssl.sh", "--fast", "--parallel", "{target}:443",
              target_form=TargetForm.DOMAIN, empty_result="No SSL/TLS information found by testssl.sh"),
        local(ToolId.FEROXBUSTER, "feroxbuster", "-u", "{target}", "-t", "10", "-d", "2",
              "-w", settings.feroxbuster_wordlist, "--silent",
              empty_result="No directories found by Feroxbuster"),

        RemotePolledAdapter(tool=ToolId.ZAP_SPIDER.value, client=zap_client, mode=ZapMode.SPIDER),
        RemotePolledAdapter(tool=ToolId.ZAP_ACTIVE.value, client=zap_client, mode=ZapMode.ACTIVE),
    ]
    return {adapter.tool: adapter for adapter in adapters}
