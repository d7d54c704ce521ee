"""
Retry controller: batch loop with classification and user consent.

The loop is an explicit state machine:

    SUBMIT -> AWAIT -> EVALUATE -> CLASSIFY -> PROMPT -> RESUBMIT -> SUBMIT ...

with terminal states DONE_SUCCESS and DONE_FAILURE. Every transition is
recorded so tests and logs can show the exact path a run took.

Retry classes:
    ALWAYS        - transport errors, write errors, open errors other than
                    "already exists"; retried on user consent
    ON_OVERWRITE  - local file already exists; retried only when the user
                    also authorizes overwriting
    NEVER         - archive not found at host; different input is needed
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Dict, List, Optional, Protocol, Sequence, Tuple

from core.errors import (
    FetchError,
    FetchErrorKind,
    is_conflict_error,
    is_retryable_error,
)
from core.logging.setup import get_logger
from core.logging.utilities import log_with_context
from kline_fetcher.schemas.descriptors import FetchJob
from kline_fetcher.schemas.events import FailureRecord
from kline_fetcher.user_input import UserAnswer, UserPrompt

logger = get_logger(__name__)


class RetryState(Enum):
    SUBMIT = "submit"
    AWAIT = "await"
    EVALUATE = "evaluate"
    CLASSIFY = "classify"
    PROMPT = "prompt"
    RESUBMIT = "resubmit"
    DONE_SUCCESS = "done_success"
    DONE_FAILURE = "done_failure"


TERMINAL_STATES = frozenset({RetryState.DONE_SUCCESS, RetryState.DONE_FAILURE})


class DoneReason(Enum):
    """Why the controller reached a terminal state."""

    COMPLETED = "completed"
    NOTHING_RETRYABLE = "nothing_retryable"
    DECLINED = "declined"
    UNRECOGNIZED_INPUT = "unrecognized_input"


class RetryClass(Enum):
    ALWAYS = "always"
    ON_OVERWRITE = "on_overwrite"
    NEVER = "never"


def classify_error(error: FetchError) -> RetryClass:
    """Retry class of one fetch failure, derived from its ErrorCategory."""
    if is_conflict_error(error):
        return RetryClass.ON_OVERWRITE
    if is_retryable_error(error):
        return RetryClass.ALWAYS
    return RetryClass.NEVER


def classify_failures(
    failures: Sequence[FailureRecord],
) -> Dict[RetryClass, List[FailureRecord]]:
    """Partition failures by retry class, keeping arrival order within each class."""
    classes: Dict[RetryClass, List[FailureRecord]] = {cls: [] for cls in RetryClass}
    for record in failures:
        classes[classify_error(record.error)].append(record)
    return classes


class BatchSubmitter(Protocol):
    def run(
        self, jobs: Sequence[FetchJob], batch_number: int = 1
    ) -> Awaitable[List[FailureRecord]]:
        ...


@dataclass
class RetryOutcome:
    """
    Terminal result of a retry controller run.

    Attributes:
        state: DONE_SUCCESS or DONE_FAILURE
        reason: Why the run ended
        unresolved: Failures nobody will retry, in the order they were given up
        batches: Number of batches submitted
        transitions: (from, to) pairs in the order they happened
    """

    state: RetryState
    reason: DoneReason
    unresolved: List[FailureRecord] = field(default_factory=list)
    batches: int = 0
    transitions: List[Tuple[RetryState, RetryState]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == RetryState.DONE_SUCCESS


class RetryController:
    """
    Drives batches until nothing retryable is left or the user stops.

    Usage:
        controller = RetryController(batch_runner, ConsolePrompt())
        outcome = await controller.run(
            [FetchJob(descriptor=d, overwrite=False) for d in generator]
        )
    """

    RETRY_QUESTION = "{count} download(s) failed and can be retried. Retry?"
    OVERWRITE_QUESTION = (
        "{count} file(s) already exist locally. Overwrite them on retry?"
    )

    def __init__(self, runner: BatchSubmitter, prompt: UserPrompt):
        self.runner = runner
        self.prompt = prompt

    async def run(self, jobs: Sequence[FetchJob]) -> RetryOutcome:
        """
        Run the state machine from SUBMIT with jobs as the first working set.

        Returns:
            RetryOutcome in a terminal state
        """
        state = RetryState.SUBMIT
        transitions: List[Tuple[RetryState, RetryState]] = []
        working: List[FetchJob] = list(jobs)
        overwrite_by_id: Dict[int, bool] = {}
        unresolved: List[FailureRecord] = []
        failures: List[FailureRecord] = []
        classes: Dict[RetryClass, List[FailureRecord]] = {}
        overwrite_granted = False
        reason: Optional[DoneReason] = None
        batches = 0
        pending: Optional["asyncio.Future[List[FailureRecord]]"] = None

        def advance(to: RetryState) -> RetryState:
            transitions.append((state, to))
            log_with_context(
                logger,
                logging.DEBUG,
                f"Retry state {state.value} -> {to.value}",
                retry_state=to.value,
                batch_number=batches,
            )
            return to

        while state not in TERMINAL_STATES:
            if state == RetryState.SUBMIT:
                batches += 1
                overwrite_by_id = {
                    job.descriptor.sequence_id: job.overwrite for job in working
                }
                pending = asyncio.ensure_future(self.runner.run(working, batches))
                state = advance(RetryState.AWAIT)

            elif state == RetryState.AWAIT:
                failures = await pending
                pending = None
                state = advance(RetryState.EVALUATE)

            elif state == RetryState.EVALUATE:
                if failures:
                    state = advance(RetryState.CLASSIFY)
                elif unresolved:
                    reason = DoneReason.NOTHING_RETRYABLE
                    state = advance(RetryState.DONE_FAILURE)
                else:
                    reason = DoneReason.COMPLETED
                    state = advance(RetryState.DONE_SUCCESS)

            elif state == RetryState.CLASSIFY:
                classes = classify_failures(failures)
                unresolved.extend(classes[RetryClass.NEVER])
                if classes[RetryClass.ALWAYS] or classes[RetryClass.ON_OVERWRITE]:
                    state = advance(RetryState.PROMPT)
                else:
                    reason = DoneReason.NOTHING_RETRYABLE
                    state = advance(RetryState.DONE_FAILURE)

            elif state == RetryState.PROMPT:
                overwrite_granted = False
                retryable = classes[RetryClass.ALWAYS] + classes[RetryClass.ON_OVERWRITE]
                reason = await self._ask_retry(len(retryable))
                if reason is None and classes[RetryClass.ON_OVERWRITE]:
                    reason, overwrite_granted = await self._ask_overwrite(
                        len(classes[RetryClass.ON_OVERWRITE])
                    )
                if reason is not None:
                    unresolved.extend(retryable)
                    state = advance(RetryState.DONE_FAILURE)
                else:
                    state = advance(RetryState.RESUBMIT)

            elif state == RetryState.RESUBMIT:
                working = self._next_working_set(
                    classes, overwrite_by_id, overwrite_granted
                )
                if not overwrite_granted:
                    unresolved.extend(classes[RetryClass.ON_OVERWRITE])
                if working:
                    state = advance(RetryState.SUBMIT)
                else:
                    reason = DoneReason.DECLINED
                    state = advance(RetryState.DONE_FAILURE)

        outcome = RetryOutcome(
            state=state,
            reason=reason,
            unresolved=unresolved,
            batches=batches,
            transitions=transitions,
        )
        log_with_context(
            logger,
            logging.INFO,
            "Retry loop finished",
            retry_state=state.value,
            done_reason=reason.value,
            unresolved=len(unresolved),
            batch_number=batches,
        )
        return outcome

    async def _ask_retry(self, count: int) -> Optional[DoneReason]:
        """None when the user agreed, otherwise the terminal reason."""
        answer = await self.prompt.prompt(self.RETRY_QUESTION.format(count=count))
        log_with_context(logger, logging.INFO, "Retry prompt answered", answer=answer.value)
        if answer == UserAnswer.YES:
            return None
        if answer == UserAnswer.NO:
            return DoneReason.DECLINED
        return DoneReason.UNRECOGNIZED_INPUT

    async def _ask_overwrite(self, count: int) -> Tuple[Optional[DoneReason], bool]:
        """(terminal reason or None, overwrite granted)."""
        answer = await self.prompt.prompt(self.OVERWRITE_QUESTION.format(count=count))
        log_with_context(
            logger, logging.INFO, "Overwrite prompt answered", answer=answer.value
        )
        if answer == UserAnswer.YES:
            return None, True
        if answer == UserAnswer.NO:
            return None, False
        return DoneReason.UNRECOGNIZED_INPUT, False

    @staticmethod
    def _next_working_set(
        classes: Dict[RetryClass, List[FailureRecord]],
        overwrite_by_id: Dict[int, bool],
        overwrite_granted: bool,
    ) -> List[FetchJob]:
        jobs: List[FetchJob] = []
        for record in classes[RetryClass.ALWAYS]:
            # A partial file is left behind after a write failure
            overwrite = (
                overwrite_by_id.get(record.sequence_id, False)
                or record.kind == FetchErrorKind.FAILED_TO_WRITE_TO_FILE
            )
            jobs.append(FetchJob(descriptor=record.descriptor, overwrite=overwrite))
        if overwrite_granted:
            for record in classes[RetryClass.ON_OVERWRITE]:
                jobs.append(FetchJob(descriptor=record.descriptor, overwrite=True))
        return jobs
