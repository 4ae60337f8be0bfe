"""Request routing for the generation service.

:class:`RequestRouter` maps a ``(verb, path)`` pair onto one of four
operations and formats the result as an :class:`HttpResponse`.

Routes
------
========  ================  ===========  ==================================
Method    Path              Kind         Purpose
========  ================  ===========  ==================================
POST      ``/generate``     mutating     Submit a generation, returns task id
GET       ``/task/{id}``    read-only    Task record as JSON
GET       ``/image/{id}``   read-only    Raw BMP bytes of a completed task
GET       ``/tasks``        read-only    All known task ids
========  ================  ===========  ==================================

Anything else is a 404 with the JSON error envelope.

Channels
--------
Requests arrive on one of two channels.  The *read-only* channel
(:meth:`RequestRouter.handle_query`) may only inspect the task store; a
generation submitted there is rejected with a 400 instead of being run.
The *update* channel (:meth:`RequestRouter.handle_update`) serves every
route.  Read-only operations never touch the pipeline or write to the store
on either channel.
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import ValidationError as PydanticValidationError

from stablediff.api.models import (
    BMP_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    ApiResponse,
    HttpRequest,
    HttpResponse,
)
from stablediff.core.exceptions import (
    NotFoundError,
    NotReadyError,
    ReadOnlyViolationError,
    StableDiffError,
    ValidationError,
)
from stablediff.core.lifecycle import TaskLifecycle
from stablediff.core.models import GenerationRequest
from stablediff.core.state import ServiceState

logger = logging.getLogger(__name__)

READ_ONLY_REJECTION = "Use the update channel to submit generation requests"


class Operation(str, Enum):
    """Operations reachable through the router."""

    SUBMIT_GENERATION = "submit-generation"
    GET_STATUS = "get-status"
    GET_ARTIFACT = "get-artifact"
    LIST_TASKS = "list-tasks"
    NOT_FOUND = "not-found"

    @property
    def mutating(self) -> bool:
        return self is Operation.SUBMIT_GENERATION


def resolve(method: str, url: str) -> tuple[Operation, str | None]:
    """Resolve a verb and URL to an operation and optional task id.

    The query string is dropped and leading slashes are trimmed before
    matching.
    """
    path = url.split("?", 1)[0].lstrip("/")
    verb = method.upper()

    if verb == "GET":
        if path == "tasks":
            return Operation.LIST_TASKS, None
        if path.startswith("task/"):
            return Operation.GET_STATUS, path[len("task/") :]
        if path.startswith("image/"):
            return Operation.GET_ARTIFACT, path[len("image/") :]
    elif verb == "POST" and path == "generate":
        return Operation.SUBMIT_GENERATION, None

    return Operation.NOT_FOUND, None


def parse_generation_request(body: bytes) -> GenerationRequest:
    """Parse a JSON body into a :class:`GenerationRequest`.

    Raises:
        ValidationError: If the body is not valid JSON or fails validation.
    """
    try:
        return GenerationRequest.model_validate_json(body)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())) or "body"
        raise ValidationError(f"Invalid JSON request: {location}: {first['msg']}") from exc


class RequestRouter:
    """Dispatch :class:`HttpRequest` objects to task operations."""

    def __init__(self, state: ServiceState, lifecycle: TaskLifecycle | None = None) -> None:
        self._state = state
        self._lifecycle = lifecycle or TaskLifecycle(state)

    # -- Channels -----------------------------------------------------------

    def handle_query(self, request: HttpRequest) -> HttpResponse:
        """Serve *request* on the read-only channel."""
        return self._handle(request, read_only=True)

    def handle_update(self, request: HttpRequest) -> HttpResponse:
        """Serve *request* on the update channel."""
        return self._handle(request, read_only=False)

    def _handle(self, request: HttpRequest, *, read_only: bool) -> HttpResponse:
        operation, task_id = resolve(request.method, request.url)
        logger.debug(
            "%s %s -> %s (read_only=%s)", request.method, request.url, operation.value, read_only
        )

        try:
            if operation is Operation.SUBMIT_GENERATION:
                generation = parse_generation_request(request.body)
                if read_only:
                    raise ReadOnlyViolationError(READ_ONLY_REJECTION)
                task_id = self._lifecycle.submit(generation)
                return self._json(200, ApiResponse.ok(task_id, self._now()))
            if operation is Operation.GET_STATUS:
                return self._get_status(task_id or "")
            if operation is Operation.GET_ARTIFACT:
                return self._get_artifact(task_id or "")
            if operation is Operation.LIST_TASKS:
                return self._json(200, ApiResponse.ok(self._state.store.list_ids(), self._now()))
            return self._json(404, ApiResponse.fail("Not Found", self._now()))
        except StableDiffError as exc:
            logger.warning("%s %s rejected: %s", request.method, request.url, exc.message)
            return self._json(exc.status_code, ApiResponse.fail(exc.message, self._now()))

    # -- Read-only handlers -------------------------------------------------

    def _get_status(self, task_id: str) -> HttpResponse:
        record = self._state.store.get(task_id)
        if record is None:
            raise NotFoundError("Task not found")
        return self._json(200, ApiResponse.ok(record.model_dump(mode="json"), self._now()))

    def _get_artifact(self, task_id: str) -> HttpResponse:
        record = self._state.store.get(task_id)
        if record is None:
            raise NotFoundError("Task not found")
        if record.result is None:
            raise NotReadyError("Image not ready or generation failed")
        return HttpResponse(
            status_code=200,
            headers=[("Content-Type", BMP_CONTENT_TYPE)],
            body=record.result,
        )

    # -- Helpers ------------------------------------------------------------

    def _now(self) -> int:
        return self._state.clock()

    @staticmethod
    def _json(status_code: int, envelope: ApiResponse) -> HttpResponse:
        return HttpResponse(
            status_code=status_code,
            headers=[("Content-Type", JSON_CONTENT_TYPE)],
            body=envelope.model_dump_json().encode("utf-8"),
        )
