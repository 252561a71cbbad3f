"""Per-request state machine tying the pipeline stages together.

Validating -> Resolving -> Fetching -> Subsetting -> Publishing -> Completed,
with Failed reachable from every stage and TimedOut once the request
deadline passes. Whatever the terminal state, every temp path the job
adopted is removed before ``run`` returns.
"""

from __future__ import annotations

import asyncio
import logging
import time
import traceback
import uuid
from collections.abc import Awaitable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TypeVar

from fontpress.config import REQUEST_DEADLINE
from fontpress.engine import SubsetEngine
from fontpress.errors import (
    DownloadError,
    ErrorKind,
    FontPressError,
    InvalidRequestError,
    JobTimeoutError,
    PublishError,
    SubsetError,
)
from fontpress.fetcher import FontFetcher, validate_url
from fontpress.publisher import PublishedArtifact, ResultPublisher
from fontpress.repertoire import Repertoire, RepertoireResolver
from fontpress.schema import CompressRequest, CompressResponse, ErrorResponse
from fontpress.tempfiles import remove_paths

logger = logging.getLogger(__name__)

T = TypeVar("T")


class JobState(str, Enum):
    VALIDATING = "validating"
    RESOLVING = "resolving"
    FETCHING = "fetching"
    SUBSETTING = "subsetting"
    PUBLISHING = "publishing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


TERMINAL_STATES = {JobState.COMPLETED, JobState.FAILED, JobState.TIMED_OUT}


@dataclass
class JobOutcome:
    state: JobState
    artifact: PublishedArtifact | None = None
    error: FontPressError | None = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.state is JobState.COMPLETED

    @property
    def status(self) -> int:
        if self.ok:
            return 200
        return self.error.kind.status if self.error else 500

    def payload(self, *, expose_detail: bool = False) -> dict:
        if self.ok and self.artifact:
            return CompressResponse(
                font_name=self.artifact.name,
                file_size=self.artifact.size,
                download_url=self.artifact.url,
            ).model_dump(by_alias=True)
        message = str(self.error) if self.error else "Unknown error"
        detail = None
        if expose_detail and self.error is not None:
            detail = "".join(traceback.format_exception(self.error)).strip()
        return ErrorResponse(error=message, detail=detail).to_json_dict()


@dataclass
class FontJob:
    """Everything one request owns: its inputs, temp paths and outcome."""

    request: CompressRequest
    deadline: float = REQUEST_DEADLINE
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    source_url: str | None = None
    repertoire: Repertoire | None = None
    input_path: Path | None = None
    paths: list[Path] = field(default_factory=list)
    state: JobState = JobState.VALIDATING
    history: list[JobState] = field(default_factory=lambda: [JobState.VALIDATING])
    artifact: PublishedArtifact | None = None
    error: FontPressError | None = None
    started: float = field(default_factory=time.monotonic)

    def adopt(self, path: Path) -> None:
        self.paths.append(Path(path))

    def advance(self, state: JobState) -> None:
        if self.state in TERMINAL_STATES:
            msg = f"Job {self.job_id} already finished ({self.state.value})"
            raise RuntimeError(msg)
        logger.debug("Job %s: %s -> %s", self.job_id, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def fail(self, error: FontPressError, *, timed_out: bool = False) -> None:
        self.error = error
        self.advance(JobState.TIMED_OUT if timed_out else JobState.FAILED)

    def cleanup(self) -> list[Path]:
        """Remove every adopted path; failures are logged, never raised."""
        leftover = remove_paths(self.paths)
        if leftover:
            logger.warning("Job %s left %d temp path(s) behind", self.job_id, len(leftover))
        else:
            logger.info("Job %s cleaned up %d temp path(s)", self.job_id, len(self.paths))
        self.paths = leftover
        return leftover

    def outcome(self) -> JobOutcome:
        return JobOutcome(
            state=self.state,
            artifact=self.artifact,
            error=self.error,
            elapsed=time.monotonic() - self.started,
        )


class RequestOrchestrator:
    """Drives one compress request through the pipeline stages in order."""

    def __init__(
        self,
        resolver: RepertoireResolver,
        fetcher: FontFetcher,
        engine: SubsetEngine,
        publisher: ResultPublisher,
        *,
        deadline: float = REQUEST_DEADLINE,
    ):
        self.resolver = resolver
        self.fetcher = fetcher
        self.engine = engine
        self.publisher = publisher
        self.deadline = deadline

    async def run(
        self, request: CompressRequest, *, deadline: float | None = None
    ) -> JobOutcome:
        """Drive one request to a terminal state; never raises for job failures.

        ``deadline`` overrides the configured one, for callers that already
        spent part of the request budget (waiting for a job slot, say).
        """
        deadline = self.deadline if deadline is None else deadline
        job = FontJob(request=request, deadline=deadline)
        try:
            await asyncio.wait_for(self._drive(job), timeout=deadline)
        except asyncio.TimeoutError:
            logger.warning("Job %s timed out during %s", job.job_id, job.state.value)
            job.fail(
                JobTimeoutError(f"Request took longer than {self.deadline:g}s"),
                timed_out=True,
            )
        except FontPressError as e:
            self._log_failure(job, e)
            job.fail(e, timed_out=e.kind is ErrorKind.TIMEOUT)
        except Exception as e:
            logger.exception("Job %s crashed during %s", job.job_id, job.state.value)
            error = FontPressError(f"Internal error: {e}")
            error.__cause__ = e
            job.fail(error)
        finally:
            job.cleanup()

        outcome = job.outcome()
        logger.info(
            "Job %s finished: %s (%.2fs)", job.job_id, outcome.state.value, outcome.elapsed
        )
        return outcome

    async def _drive(self, job: FontJob) -> None:
        self._validate(job)

        job.advance(JobState.RESOLVING)
        job.repertoire = self.resolver.resolve(job.request.text, job.request.charsets)
        logger.info(
            "Job %s: %d characters to keep (text %d, charsets %s)",
            job.job_id,
            len(job.repertoire),
            len(job.request.text),
            ", ".join(job.request.charsets) or "none",
        )

        job.advance(JobState.FETCHING)
        job.input_path = await self._stage(
            self.fetcher.fetch(job.source_url, owner=job), DownloadError
        )

        job.advance(JobState.SUBSETTING)
        result = await self._stage(
            self.engine.subset(job.input_path, job.repertoire, owner=job), SubsetError
        )

        job.advance(JobState.PUBLISHING)
        job.artifact = await self._stage(
            self.publisher.publish(result, job.input_path.stem), PublishError
        )
        job.advance(JobState.COMPLETED)

    @staticmethod
    def _validate(job: FontJob) -> None:
        request = job.request
        source = request.source_url
        if not source or (not request.text and not request.charsets):
            msg = "Missing 'url' parameter or no text/charsets provided"
            raise InvalidRequestError(msg)
        job.source_url = validate_url(source)

    @staticmethod
    async def _stage(awaitable: Awaitable[T], error_cls: type[FontPressError]) -> T:
        """Await a stage; unclassified exceptions become the stage's error."""
        try:
            return await awaitable
        except FontPressError:
            raise
        except Exception as e:
            raise error_cls(str(e) or e.__class__.__name__) from e

    @staticmethod
    def _log_failure(job: FontJob, error: FontPressError) -> None:
        if error.kind is ErrorKind.BAD_REQUEST:
            logger.warning("Job %s rejected: %s", job.job_id, error)
        else:
            logger.error(
                "Job %s failed during %s [%s]: %s",
                job.job_id,
                job.state.value,
                error.kind.value,
                error,
            )
