"""Per-scenario evidence collection.

A :class:`ProofSession` writes artifacts into
``<output_dir>/<scenario_id>/`` as the scenario runs: the observed value
of every check (JSON), screenshots taken on failure, and free-form log
entries. :meth:`ProofSession.finalize` writes ``manifest.json`` listing
everything that was captured.

Usage::

    session = ProofSession(Path('evidence'), 'VB-003')
    session.record_observation(step=9, name='bar chart data',
                               observed=[37, 202], expected=[37, 202],
                               outcome='pass')
    await session.capture_screenshot(step=9, description='chart',
                                     capture=page.screenshot)
    artifacts = session.finalize()
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable


class ArtifactType(str, Enum):
    """Type of evidence artifact."""

    SCREENSHOT = 'screenshot'
    OBSERVATION = 'observation'
    LOG_ENTRY = 'log_entry'


@dataclass(frozen=True, slots=True)
class EvidenceArtifact:
    """A single piece of captured evidence."""

    artifact_type: ArtifactType
    step_number: int
    description: str
    file_path: str  # Relative to output directory.
    timestamp: str  # ISO-8601
    scenario_id: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            'type': self.artifact_type.value,
            'step': self.step_number,
            'description': self.description,
            'file': self.file_path,
            'timestamp': self.timestamp,
            'scenario_id': self.scenario_id,
            'metadata': self.metadata,
        }


class ProofSession:
    """Collects evidence artifacts for a single scenario run."""

    def __init__(self, output_dir: Path, scenario_id: str) -> None:
        self._output_dir = output_dir
        self._scenario_id = scenario_id
        self._artifacts: list[EvidenceArtifact] = []
        self._scenario_dir = output_dir / scenario_id
        self._scenario_dir.mkdir(parents=True, exist_ok=True)
        self._finalized = False

    @property
    def scenario_dir(self) -> Path:
        return self._scenario_dir

    @property
    def scenario_id(self) -> str:
        return self._scenario_id

    @property
    def artifacts(self) -> tuple[EvidenceArtifact, ...]:
        return tuple(self._artifacts)

    def _register(
        self,
        artifact_type: ArtifactType,
        step: int,
        description: str,
        file_path: Path,
        metadata: dict[str, Any] | None = None,
    ) -> EvidenceArtifact:
        artifact = EvidenceArtifact(
            artifact_type=artifact_type,
            step_number=step,
            description=description,
            file_path=str(file_path.relative_to(self._output_dir)),
            timestamp=_now_iso(),
            scenario_id=self._scenario_id,
            metadata=metadata or {},
        )
        self._artifacts.append(artifact)
        return artifact

    def record_observation(
        self,
        *,
        step: int,
        name: str,
        observed: Any,
        expected: Any,
        outcome: str,
    ) -> EvidenceArtifact:
        """Write a check's observed and expected values to JSON."""
        file_path = self._scenario_dir / f'step{step:02d}_{_safe_name(name)}.json'
        payload = {
            'name': name,
            'outcome': outcome,
            'expected': expected,
            'observed': observed,
        }
        file_path.write_text(json.dumps(payload, indent=2), encoding='utf-8')
        return self._register(
            ArtifactType.OBSERVATION, step, f'{name} [{outcome}]', file_path,
            {'outcome': outcome},
        )

    async def capture_screenshot(
        self,
        *,
        step: int,
        description: str,
        capture: Callable[[Path], Awaitable[Path]],
    ) -> EvidenceArtifact:
        """Capture a screenshot through ``capture`` and register it.

        ``capture`` is offered a ``.png`` path and returns the path it
        actually wrote; that path is what the manifest records.
        """
        output_path = self._scenario_dir / f'step{step:02d}_screenshot.png'
        written = await capture(output_path)
        return self._register(ArtifactType.SCREENSHOT, step, description, written)

    def record_log_entry(
        self,
        *,
        step: int,
        description: str,
        log_text: str,
    ) -> EvidenceArtifact:
        """Record a log entry as evidence."""
        file_path = self._scenario_dir / f'step{step:02d}_log.txt'
        file_path.write_text(log_text, encoding='utf-8')
        return self._register(ArtifactType.LOG_ENTRY, step, description, file_path)

    def finalize(self) -> tuple[EvidenceArtifact, ...]:
        """Return all collected artifacts and write the manifest."""
        if self._finalized:
            return tuple(self._artifacts)

        manifest_path = self._scenario_dir / 'manifest.json'
        manifest = {
            'scenario_id': self._scenario_id,
            'artifact_count': len(self._artifacts),
            'finalized_at': _now_iso(),
            'artifacts': [a.to_dict() for a in self._artifacts],
        }
        manifest_path.write_text(json.dumps(manifest, indent=2), encoding='utf-8')
        self._finalized = True
        return tuple(self._artifacts)


# ── Helpers ────────────────────────────────────────────────────────


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _safe_name(name: str) -> str:
    """Convert a step name to a safe filename component."""
    return re.sub(r'[^a-z0-9]+', '_', name.lower()).strip('_') or 'check'
