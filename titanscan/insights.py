"""
Insight Analyzer: raw scan text -> structured findings, summary, key points.

Providers:
- GEMINI -> Gemini through its OpenAI-compatible endpoint
- OPENROUTER -> OpenRouter (multi-model)
- MOCK -> deterministic heuristics, no API needed

Analysis never fails the caller: any provider error degrades to empty
insights so a slow or broken LLM cannot fail a scan.
"""
import asyncio
import json
import logging
import os
import re
from typing import List, Optional

from openai import AsyncOpenAI

from .models import Insights, Vulnerability

logger = logging.getLogger(__name__)

CVE_PATTERN = re.compile(r"CVE-\d{4}-\d{4,7}", re.IGNORECASE)
VULNERABLE_MARKERS = ("VULNERABLE", "[critical]", "[high]", "[medium]", "OSVDB-")

SYSTEM_PROMPT = (
    "You are a senior penetration tester. Analyze raw security scanner output "
    "and answer with JSON only."
)


class InsightAnalyzer:
    def __init__(self, provider: Optional[str] = None, max_chars: Optional[int] = None, client=None):
        self.provider = (provider or os.getenv("LLM_PROVIDER", "GEMINI")).upper()
        self.max_chars = max_chars or int(os.getenv("INSIGHT_MAX_CHARS", "30000"))
        self.max_retries = 3
        self.retry_delay = 1.0
        self.mode = "MOCK"
        self.client = client
        self.model = None

        if client is not None:
            self.mode = "REAL"
            self.model = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        elif self.provider == "GEMINI":
            api_key = os.getenv("GEMINI_API_KEY")
            if api_key:
                self.client = AsyncOpenAI(
                    base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
                    api_key=api_key,
                )
                self.model = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
                self.mode = "REAL"
            else:
                logger.warning("GEMINI_API_KEY not found. Falling back to MOCK insights.")
        elif self.provider == "OPENROUTER":
            api_key = os.getenv("OPENROUTER_API_KEY")
            if api_key:
                self.client = AsyncOpenAI(base_url="https://openrouter.ai/api/v1", api_key=api_key)
                self.model = os.getenv("OPENROUTER_MODEL", "google/gemini-2.0-flash-001")
                self.mode = "REAL"
            else:
                logger.warning("OPENROUTER_API_KEY not found. Falling back to MOCK insights.")

        logger.info(f"Insight analyzer ready: {self.mode} mode ({self.provider})")

    def _construct_prompt(self, raw_text: str) -> str:
        return f"""Analyze the following security scan output.

Return a JSON object with exactly these keys:
- "vulnerabilities": list of objects with "title", "severity" (CRITICAL|HIGH|MEDIUM|LOW|INFO),
  "description" and "remediation"
- "summary": two or three sentences describing the overall security posture
- "keyPoints": list of short strings with the most important observations

Scan output:
{raw_text[:self.max_chars]}"""

    async def analyze(self, raw_text: str) -> Insights:
        if not raw_text or not raw_text.strip():
            return Insights()
        try:
            if self.mode == "MOCK":
                return self._analyze_mock(raw_text)
            return await self._analyze_real(raw_text)
        except Exception as e:
            logger.exception(f"Insight analysis failed, returning empty insights: {e}")
            return Insights()

    async def _analyze_real(self, raw_text: str) -> Insights:
        prompt = self._construct_prompt(raw_text)

        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=0.2,
                )
                return parse_insights(response.choices[0].message.content)
            except Exception as e:
                logger.warning(f"LLM error (attempt {attempt}/{self.max_retries}): {e}")
                if attempt < self.max_retries:
                    await asyncio.sleep(self.retry_delay)

        logger.warning("All LLM attempts failed. Returning empty insights.")
        return Insights()

    def _analyze_mock(self, raw_text: str) -> Insights:
        """Heuristic extraction of CVE ids and lines flagged as vulnerable."""
        findings: List[Vulnerability] = []
        seen = set()

        for line in raw_text.splitlines():
            line = line.strip()
            if not line:
                continue
            cves = CVE_PATTERN.findall(line)
            flagged = any(marker.lower() in line.lower() for marker in VULNERABLE_MARKERS)
            if not cves and not flagged:
                continue
            title = cves[0].upper() if cves else line[:80]
            if title in seen:
                continue
            seen.add(title)
            findings.append(Vulnerability(
                title=title,
                severity="HIGH" if cves else "MEDIUM",
                description=line[:300],
                remediation="Review the affected component and apply vendor patches.",
            ))

        if findings:
            summary = f"{len(findings)} potential issue(s) identified in the scan output."
        else:
            summary = "No obvious vulnerabilities identified in the scan output."
        key_points = [f.title for f in findings[:5]]
        return Insights(vulnerabilities=findings, summary=summary, key_points=key_points)


def parse_insights(content: Optional[str]) -> Insights:
    """Parse an LLM JSON answer, tolerating markdown code fences."""
    text = (content or "").strip()
    if "```json" in text:
        text = text.split("```json")[1].split("```")[0].strip()
    elif "```" in text:
        text = text.split("```")[1].split("```")[0].strip()

    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("Insight response is not a JSON object")

    vulnerabilities = []
    for item in data.get("vulnerabilities") or []:
        if isinstance(item, dict) and item.get("title"):
            vulnerabilities.append(Vulnerability(**item))
        elif isinstance(item, str):
            vulnerabilities.append(Vulnerability(title=item))

    key_points = data.get("keyPoints", data.get("key_points")) or []
    return Insights(
        vulnerabilities=vulnerabilities,
        summary=str(data.get("summary") or ""),
        key_points=[str(point) for point in key_points],
    )
