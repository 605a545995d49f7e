"""
Scan Orchestrator

Modes:
- Async job: create_job() returns a job id immediately; a detached task
  walks the job through Starting -> Resolving -> Running -> Analyzing ->
  Done/Error, writing each step to the Progress Store.
- Aggregate: run_aggregate() runs several tools to completion in one call
  and returns one combined report. A failing tool never aborts its
  siblings; the run only fails when every tool failed.
- ZAP scan: run_zap_scan() returns raw spider/active results directly.
"""
import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from .adapters import RemotePolledAdapter, ToolAdapter
from .errors import AdapterError, AllToolsFailed, TargetValidationError, UnknownTool
from .insights import InsightAnalyzer
from .models import (
    AggregateResult,
    Insights,
    JobPhase,
    ProgressSnapshot,
    TOOL_ALIASES,
    ToolId,
    ToolInvocationResult,
    Vulnerability,
)
from .progress import ProgressStore
from .security import validate_target

logger = logging.getLogger(__name__)


@dataclass
class ScanJob:
    """Mutable job state, owned by exactly one execution task."""
    id: str
    tool: str
    target: str
    phase: JobPhase = JobPhase.STARTING
    status: str = JobPhase.STARTING.label
    output: str = ""
    vulnerabilities: List[Vulnerability] = field(default_factory=list)

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            percent=self.phase.percent,
            status=self.status,
            output=self.output,
            vulnerabilities=list(self.vulnerabilities),
        )


class ScanOrchestrator:
    def __init__(
        self,
        adapters: Mapping[str, ToolAdapter],
        progress_store: ProgressStore,
        analyzer: InsightAnalyzer,
        scan_store=None,
        aggregate_concurrency: int = 1,
    ):
        self.adapters = dict(adapters)
        self.progress_store = progress_store
        self.analyzer = analyzer
        self.scan_store = scan_store
        self.aggregate_concurrency = max(1, aggregate_concurrency)
        self._tasks: Dict[str, asyncio.Task] = {}

    # =========================================================================
    # Tool lookup
    # =========================================================================

    def resolve_tool(self, tool: Optional[str]) -> ToolAdapter:
        name = TOOL_ALIASES.get(tool, tool)
        adapter = self.adapters.get(name) if name else None
        if adapter is None:
            raise UnknownTool(str(tool))
        return adapter

    def available_tools(self) -> List[str]:
        return sorted(self.adapters)

    # =========================================================================
    # ASYNC JOB MODE
    # =========================================================================

    async def create_job(self, tool: Optional[str], target: str) -> str:
        """
        Validate the target, install the initial snapshot and start the job.

        Returns:
            The new job id (the job itself keeps running in the background)

        Raises:
            TargetValidationError: No job is created for an invalid target
        """
        target = validate_target(target)

        job_id = str(uuid.uuid4())
        while self.progress_store.read(job_id) is not None or job_id in self._tasks:
            job_id = str(uuid.uuid4())

        job = ScanJob(id=job_id, tool=str(tool), target=target)
        self.progress_store.create(job_id)

        task = asyncio.create_task(self._execute(job), name=f"scan-job-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job_id, None))

        logger.info(f"Job {job_id} created: {tool} on {target}")
        return job_id

    def get_progress(self, job_id: str) -> Optional[ProgressSnapshot]:
        return self.progress_store.read(job_id)

    def is_active(self, job_id: str) -> bool:
        return job_id in self._tasks

    async def wait(self, job_id: str):
        """Wait for a job's execution task to finish (no-op if not running)."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)

    async def _analyze(self, output: str) -> Insights:
        """Insight failures degrade to empty insights, never to a failed scan."""
        try:
            return await self.analyzer.analyze(output)
        except Exception:
            logger.exception("Insight analysis failed, continuing without insights")
            return Insights()

    def _advance(self, job: ScanJob, phase: JobPhase, status: Optional[str] = None):
        job.phase = phase
        job.status = status or phase.label
        self.progress_store.update(job.id, job.snapshot())
        logger.debug(f"Job {job.id}: {job.phase.percent}% {job.status}")

    def _fail(self, job: ScanJob, reason: str):
        job.output = ""
        job.vulnerabilities = []
        self._advance(job, JobPhase.ERROR)
        logger.warning(f"Job {job.id} ({job.tool}) failed: {reason}")

    async def _execute(self, job: ScanJob):
        try:
            self._advance(job, JobPhase.RESOLVING)

            try:
                adapter = self.resolve_tool(job.tool)
            except UnknownTool as e:
                self._fail(job, str(e))
                return

            self._advance(job, JobPhase.RUNNING, f"Running {adapter.tool}")
            try:
                output = await adapter.invoke(job.target)
            except AdapterError as e:
                self._fail(job, str(e))
                return

            job.output = output
            self._advance(job, JobPhase.ANALYZING)

            insights = await self._analyze(output)
            job.vulnerabilities = list(insights.vulnerabilities)
            self._advance(job, JobPhase.FINALIZING)

            self._advance(job, JobPhase.DONE)
            logger.info(f"Job {job.id} done: {len(job.vulnerabilities)} finding(s)")
        except Exception as e:
            logger.exception(f"Job {job.id} crashed")
            if not job.phase.is_terminal:
                self._fail(job, f"{type(e).__name__}: {e}")

    # =========================================================================
    # AGGREGATE MODE
    # =========================================================================

    async def _invoke_tool(self, target: str, tool: str) -> ToolInvocationResult:
        """Run one tool plus insight analysis; every failure becomes a result."""
        try:
            adapter = self.resolve_tool(tool)
            output = await adapter.invoke(target)
        except (AdapterError, UnknownTool) as e:
            logger.warning(f"Tool {tool} failed on {target}: {e}")
            return ToolInvocationResult(tool=tool, error=str(e))
        except Exception as e:
            logger.exception(f"Tool {tool} crashed on {target}")
            return ToolInvocationResult(tool=tool, error=f"{type(e).__name__}: {e}")

        insights = await self._analyze(output)
        return ToolInvocationResult(tool=tool, output=output, insights=insights)

    async def _invoke_all(self, target: str, tools: Sequence[str]) -> List[ToolInvocationResult]:
        if self.aggregate_concurrency == 1:
            results = []
            for tool in tools:
                results.append(await self._invoke_tool(target, tool))
            return results

        semaphore = asyncio.Semaphore(self.aggregate_concurrency)

        async def bounded(tool: str) -> ToolInvocationResult:
            async with semaphore:
                return await self._invoke_tool(target, tool)

        return list(await asyncio.gather(*(bounded(tool) for tool in tools)))

    async def run_aggregate(self, target: str, tools: Optional[Sequence[str]]) -> AggregateResult:
        """
        Run every requested tool against one target and combine the results.

        Raises:
            TargetValidationError: Invalid target or empty tool list
            AllToolsFailed: No tool produced output
        """
        if not target or not tools or not isinstance(tools, (list, tuple)):
            raise TargetValidationError("Target URL and at least one tool are required")
        target = validate_target(target)

        logger.info(f"Aggregate scan of {target} with {len(tools)} tool(s)")
        results = await self._invoke_all(target, list(tools))

        aggregate = AggregateResult(target=target)
        summaries = []
        for result in results:
            if result.ok:
                aggregate.raw_output += f"\n--- Output from {result.tool} ---\n{result.output}\n"
                aggregate.vulnerabilities.extend(result.insights.vulnerabilities)
                summaries.append(result.insights.summary)
                aggregate.key_points.extend(result.insights.key_points)
            else:
                aggregate.errors.append(f"{result.tool}: {result.error}")
                aggregate.raw_output += f"\n--- Error from {result.tool} ---\n{result.error}\n"
        aggregate.summary = "\n".join(summaries).strip()

        if len(aggregate.errors) == len(results):
            raise AllToolsFailed(aggregate.errors)

        if self.scan_store is not None:
            metadata = {
                "vulnerabilities": [v.model_dump() for v in aggregate.vulnerabilities],
                "summary": aggregate.summary,
                "keyPoints": aggregate.key_points,
                "tools": list(tools),
                "timestamp": aggregate.timestamp.isoformat(timespec="seconds"),
            }
            if aggregate.errors:
                metadata["errors"] = aggregate.errors
            saved = await self.scan_store.save(target, aggregate.raw_output, json.dumps(metadata))
            aggregate.record_id = saved["id"]

        return aggregate

    # =========================================================================
    # ZAP SCAN MODE
    # =========================================================================

    async def run_zap_scan(self, target: str, mode: str = "spider") -> dict:
        """
        Run a ZAP spider (default) or active scan and return its raw results.
        Insights are only generated for active scans that produced alerts.
        """
        target = validate_target(target)
        tool = ToolId.ZAP_ACTIVE.value if mode == "active" else ToolId.ZAP_SPIDER.value
        adapter = self.resolve_tool(tool)
        if not isinstance(adapter, RemotePolledAdapter):
            raise UnknownTool(tool)

        results = await adapter.fetch(target)

        insights = Insights()
        if mode == "active" and results:
            insights = await self._analyze(json.dumps(results))
        return {"result": results, "insights": insights}
