"""
Remote proving backend: drives one proof session to a terminal state.

    SUBMITTING -> UPLOADING_IMAGE -> UPLOADING_INPUT -> SESSION_CREATED
        -> POLLING -> SUCCEEDED | FAILED | TIMED_OUT | ABORTED

The image and input uploads run concurrently; both finish before the
session is created. Polling blocks on a fixed interval between status
queries, which bounds the request rate against the service. Nothing is
retried here: any failure ends the attempt, and a retry means resubmitting
the whole job.
"""

from __future__ import annotations

import sys
import time
from concurrent.futures import ThreadPoolExecutor, wait
from enum import Enum
from typing import Callable, Optional, Protocol

from headerchain.bonsai import IMAGES_ROUTE, INPUTS_ROUTE, SessionId, SessionStatus, UploadLocation
from headerchain.exceptions import PollDeadlineExceeded, ProtocolViolation, RemoteJobFailed
from headerchain.packager import PackagedInput
from headerchain.registry import ProgramEntry

DEFAULT_POLL_INTERVAL_S = 15.0
DEFAULT_DEADLINE_S = 2 * 60 * 60


class JobState(str, Enum):
    SUBMITTING = "SUBMITTING"
    UPLOADING_IMAGE = "UPLOADING_IMAGE"
    UPLOADING_INPUT = "UPLOADING_INPUT"
    SESSION_CREATED = "SESSION_CREATED"
    POLLING = "POLLING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"
    ABORTED = "ABORTED"


RUNNING = "RUNNING"
SUCCEEDED = "SUCCEEDED"
TERMINAL_FAILURES = {
    "FAILED": JobState.FAILED,
    "TIMED_OUT": JobState.TIMED_OUT,
    "ABORTED": JobState.ABORTED,
}


class Transport(Protocol):
    """The slice of the REST client the state machine needs."""

    def upload_location(self, route: str) -> UploadLocation: ...

    def put_bytes(self, url: str, data: bytes) -> None: ...

    def create_session(self, img_id: str, input_id: str) -> SessionId: ...

    def get_status(self, session: SessionId) -> SessionStatus: ...

    def download(self, url: str) -> bytes: ...


class SessionClient:
    """
    One remote proving job.

    Args:
        transport: REST capability (BonsaiClient in production)
        poll_interval: Seconds to block between status queries while RUNNING
        deadline: Seconds after which a still-RUNNING session is abandoned
            with PollDeadlineExceeded; None polls forever
        sleep: Blocking sleep, injectable for tests
        clock: Monotonic clock, injectable for tests
        on_transition: Called with (old, new) on every state change
    """

    def __init__(
        self,
        transport: Transport,
        poll_interval: float = DEFAULT_POLL_INTERVAL_S,
        deadline: Optional[float] = DEFAULT_DEADLINE_S,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        on_transition: Optional[Callable[[JobState, JobState], None]] = None,
        verbose: bool = True,
    ):
        self.transport = transport
        self.poll_interval = float(poll_interval)
        self.deadline = deadline
        self._sleep = sleep
        self._clock = clock
        self._on_transition = on_transition
        self.verbose = verbose
        self.state = JobState.SUBMITTING
        self.session: Optional[SessionId] = None

    def _log(self, message: str) -> None:
        if self.verbose:
            print(message, file=sys.stderr)

    def _enter(self, state: JobState) -> None:
        old, self.state = self.state, state
        if self._on_transition is not None and old is not state:
            self._on_transition(old, state)

    def _upload(self, route: str, data: bytes) -> str:
        location = self.transport.upload_location(route)
        self.transport.put_bytes(location.url, data)
        return location.uuid

    def upload(self, image: bytes, input_data: bytes) -> tuple[str, str]:
        """Upload image and input concurrently; return (image uuid, input uuid)."""
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="upload") as pool:
            self._enter(JobState.UPLOADING_IMAGE)
            image_future = pool.submit(self._upload, IMAGES_ROUTE, image)
            self._enter(JobState.UPLOADING_INPUT)
            input_future = pool.submit(self._upload, INPUTS_ROUTE, input_data)
            wait([image_future, input_future])
        return image_future.result(), input_future.result()

    def submit(self, image: bytes, input_data: bytes) -> SessionId:
        img_id, input_id = self.upload(image, input_data)
        self.session = self.transport.create_session(img_id, input_id)
        self._enter(JobState.SESSION_CREATED)
        self._log(f"Session created: {self.session.uuid}")
        return self.session

    def poll(self, session: SessionId) -> SessionStatus:
        """
        Query status until the session leaves RUNNING.

        Returns the SUCCEEDED status, which is guaranteed to carry a receipt_url.

        Raises:
            RemoteJobFailed: On FAILED, TIMED_OUT, ABORTED or any unknown status
            ProtocolViolation: On SUCCEEDED without a receipt_url
            PollDeadlineExceeded: If the deadline passes while RUNNING
        """
        self._enter(JobState.POLLING)
        started = self._clock()
        while True:
            res = self.transport.get_status(session)
            if res.status == RUNNING:
                if self.deadline is not None and self._clock() - started >= self.deadline:
                    raise PollDeadlineExceeded(session.uuid, self.deadline)
                self._log(f"Session {session.uuid}: {res.status}")
                self._sleep(self.poll_interval)
                continue
            if res.status == SUCCEEDED:
                if not res.receipt_url:
                    raise ProtocolViolation(
                        f"API error, missing receipt on completed session {session.uuid}"
                    )
                self._enter(JobState.SUCCEEDED)
                return res
            self._enter(TERMINAL_FAILURES.get(res.status, JobState.FAILED))
            raise RemoteJobFailed(res.status, session.uuid)

    def run(self, image: bytes, input_data: bytes) -> bytes:
        """Submit, poll to completion and download the receipt bytes."""
        session = self.submit(image, input_data)
        status = self.poll(session)
        self._log(f"Session {session.uuid}: downloading receipt")
        return self.transport.download(status.receipt_url)

    def prove(self, entry: ProgramEntry, packaged: PackagedInput) -> bytes:
        self._log(
            f"Proving {entry.name} remotely ({len(packaged.headers)} headers, "
            f"image {entry.storage_path.name})"
        )
        return self.run(entry.image, packaged.encode())
