import asyncio
import io
import json
import random
import shutil
import tempfile
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, BinaryIO, Dict, Optional, Sequence, Tuple, Union

import aiohttp
from loguru import logger

from document_translation_client import cancellation
from document_translation_client.exceptions import (
    AuthorizationError,
    BadRequestError,
    ConnectionFailedError,
    DocumentNotReadyError,
    ErrorKind,
    GlossaryNotFoundError,
    NotFoundError,
    QuotaExceededError,
    RequestTimeoutError,
    TooManyRequestsError,
    UnexpectedStatusError,
)
from document_translation_client.models import RetryPolicy

HTTP_STATUS_TOO_MANY_REQUESTS = 429
HTTP_STATUS_QUOTA_EXCEEDED = 456
HTTP_STATUS_SERVICE_UNAVAILABLE = 503

CHUNK_SIZE = 64 * 1024
SPOOL_MAX_SIZE = 8 * 1024 * 1024

Params = Sequence[Tuple[str, str]]


class ApiResponse:
    """Status, headers and body of a response; the body is spooled to disk when large"""

    def __init__(self, status: int, headers, body: BinaryIO):
        self.status = status
        self.headers = headers
        self._body = body

    def read(self) -> bytes:
        self._body.seek(0)
        return self._body.read()

    def text(self) -> str:
        return self.read().decode("utf-8")

    def json(self) -> Any:
        return json.loads(self.read())

    def copy_to(self, sink: BinaryIO) -> None:
        self._body.seek(0)
        shutil.copyfileobj(self._body, sink, CHUNK_SIZE)

    def close(self) -> None:
        self._body.close()

    def __enter__(self) -> "ApiResponse":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class UploadFile:
    """File to send as the multipart ``file`` field; re-read from the same offset on every attempt"""

    def __init__(self, file: Union[bytes, BinaryIO], filename: str):
        if isinstance(file, (bytes, bytearray)):
            file = io.BytesIO(file)
        self.file = file
        self.filename = filename
        self.offset = file.tell()

    async def chunks(self) -> AsyncIterator[bytes]:
        self.file.seek(self.offset)
        while True:
            chunk = self.file.read(CHUNK_SIZE)
            if not chunk:
                break
            yield chunk


class AttemptOutcomeKind(str, Enum):
    success = "success"
    retryable = "retryable"
    fatal = "fatal"


@dataclass
class AttemptOutcome:
    kind: AttemptOutcomeKind
    response: Optional[ApiResponse] = None
    cause: Optional[BaseException] = None


def _kind_for_status(status: int, glossary: bool, downloading: bool) -> ErrorKind:
    if status in (401, 403):
        return ErrorKind.authorization
    if status == 404:
        return ErrorKind.glossary_not_found if glossary else ErrorKind.not_found
    if status == HTTP_STATUS_QUOTA_EXCEEDED:
        return ErrorKind.quota_exceeded
    if status == HTTP_STATUS_TOO_MANY_REQUESTS:
        return ErrorKind.too_many_requests
    if status == 400:
        return ErrorKind.bad_request
    if status == HTTP_STATUS_SERVICE_UNAVAILABLE and downloading:
        return ErrorKind.document_not_ready
    return ErrorKind.unclassified


_STATUS_ERRORS = {
    ErrorKind.authorization: (AuthorizationError, "Authorization failure, check auth key"),
    ErrorKind.not_found: (NotFoundError, "Not found, check server URL"),
    ErrorKind.glossary_not_found: (GlossaryNotFoundError, "Glossary not found"),
    ErrorKind.quota_exceeded: (QuotaExceededError, "Quota for this billing period has been exceeded"),
    ErrorKind.too_many_requests: (
        TooManyRequestsError,
        "Too many requests, the translation servers are currently experiencing high load",
    ),
    ErrorKind.bad_request: (BadRequestError, "Bad request"),
    ErrorKind.document_not_ready: (DocumentNotReadyError, "Document not ready"),
}


def _error_detail(response: ApiResponse) -> str:
    """Extracts ``message``/``detail`` from an error body, or returns an empty string"""
    try:
        payload = response.json()
    except ValueError:
        return ""
    if not isinstance(payload, dict):
        return ""

    detail = ""
    if payload.get("message") is not None:
        detail += f", message: {payload['message']}"
    if payload.get("detail") is not None:
        detail += f", detail: {payload['detail']}"
    return detail


def raise_for_status(response: ApiResponse, glossary: bool = False, downloading: bool = False) -> None:
    """Raises the error matching a failed response's status code, closing the response"""
    status = response.status
    if status < 400:
        return

    try:
        detail = _error_detail(response)
    finally:
        response.close()

    kind = _kind_for_status(status, glossary, downloading)
    if kind == ErrorKind.unclassified:
        if status == HTTP_STATUS_SERVICE_UNAVAILABLE:
            raise UnexpectedStatusError("Service unavailable" + detail, status_code=status)
        raise UnexpectedStatusError(f"Unexpected status code: {status}" + detail, status_code=status)

    error_class, message = _STATUS_ERRORS[kind]
    raise error_class(message + detail)


class ApiClient:
    """Sends HTTP requests to the translation service, retrying transient failures.

    A single pooled ``aiohttp.ClientSession`` is shared by every call made
    through the client and created on first use. The retry policy is
    immutable, and the jitter generator is lock-guarded, so one instance can
    serve many concurrent calls.
    """

    def __init__(
        self,
        server_url: str,
        headers: Optional[Dict[str, str]] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.server_url = server_url.rstrip("/")
        self.headers = dict(headers or {})
        self.retry_policy = retry_policy or RetryPolicy()
        self.logger = logger
        self._session: Optional[aiohttp.ClientSession] = None
        self._rng = random.Random()
        self._rng_lock = threading.Lock()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self.headers)
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _calculate_delay(self, attempt: int) -> float:
        """Calculates the backoff before the retry following ``attempt``, with random jitter"""
        policy = self.retry_policy
        delay = min(
            policy.backoff_initial * (policy.backoff_multiplier ** (attempt - 1)),
            policy.backoff_max,
        )
        with self._rng_lock:
            spread = self._rng.uniform(-1.0, 1.0)
        return delay * (1.0 + policy.backoff_jitter * spread)

    @staticmethod
    def _is_retryable_status(status: int, downloading: bool) -> bool:
        # a document that is not ready yet must be reported, not waited for
        if downloading and status == HTTP_STATUS_SERVICE_UNAVAILABLE:
            return False
        return status == HTTP_STATUS_TOO_MANY_REQUESTS or status >= 500

    @staticmethod
    def _build_body(
        data: Optional[Params], upload: Optional[UploadFile]
    ) -> Optional[aiohttp.FormData]:
        if data is None and upload is None:
            return None
        form = aiohttp.FormData(list(data or []))
        if upload is not None:
            form.add_field(
                "file",
                upload.chunks(),
                filename=upload.filename,
                content_type="application/octet-stream",
            )
        return form

    async def _send(
        self,
        method: str,
        url: str,
        params: Optional[Params],
        data: Optional[Params],
        upload: Optional[UploadFile],
        accept: str,
        timeout: float,
    ) -> ApiResponse:
        session = self._get_session()
        async with session.request(
            method,
            url,
            params=list(params) if params else None,
            data=self._build_body(data, upload),
            headers={"Accept": accept},
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as response:
            body = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE)
            try:
                async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                    body.write(chunk)
            except BaseException:
                body.close()
                raise
            return ApiResponse(response.status, response.headers.copy(), body)

    async def _attempt(
        self,
        method: str,
        url: str,
        params: Optional[Params],
        data: Optional[Params],
        upload: Optional[UploadFile],
        accept: str,
        timeout: float,
        downloading: bool,
        cancel: Optional[asyncio.Event],
    ) -> AttemptOutcome:
        try:
            response = await cancellation.run(
                self._send(method, url, params, data, upload, accept, timeout), cancel, ApiResponse.close
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.warning(f"{method} {url} failed: {e!r}")
            return AttemptOutcome(AttemptOutcomeKind.retryable, cause=e)

        if response.status < 400:
            return AttemptOutcome(AttemptOutcomeKind.success, response=response)
        if self._is_retryable_status(response.status, downloading):
            self.logger.warning(f"{method} {url} returned HTTP {response.status}")
            return AttemptOutcome(AttemptOutcomeKind.retryable, response=response)
        return AttemptOutcome(AttemptOutcomeKind.fatal, response=response)

    @staticmethod
    def _raise_exhausted(outcome: AttemptOutcome, glossary: bool, downloading: bool) -> None:
        if outcome.response is not None:
            raise_for_status(outcome.response, glossary, downloading)
        cause = outcome.cause
        if isinstance(cause, asyncio.TimeoutError):
            raise ConnectionFailedError(f"Request timed out: {cause!r}", cause) from cause
        raise ConnectionFailedError(f"Request failed: {cause!r}", cause) from cause

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Params] = None,
        data: Optional[Params] = None,
        upload: Optional[UploadFile] = None,
        accept: str = "application/json",
        glossary: bool = False,
        downloading: bool = False,
        cancel: Optional[asyncio.Event] = None,
    ) -> ApiResponse:
        """Performs one logical call and returns the successful response.

        Connection failures, 429 and 5xx responses are retried with
        exponential backoff until ``max_attempts`` or the overall timeout is
        reached. Any other failure status is raised immediately as the
        matching ``TranslationClientError``. ``glossary`` maps 404 to
        ``GlossaryNotFoundError``, ``downloading`` maps 503 to
        ``DocumentNotReadyError``. Setting ``cancel`` aborts the call with
        ``OperationCancelledError``.

        The caller owns the returned response and must close it.
        """
        url = f"{self.server_url}{path}"
        policy = self.retry_policy
        loop = asyncio.get_event_loop()
        deadline = loop.time() + policy.overall_timeout
        attempt = 0

        while True:
            attempt += 1
            cancellation.raise_if_cancelled(cancel, "Request")
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise RequestTimeoutError(
                    f"{method} {path} did not complete within {policy.overall_timeout} seconds"
                )

            outcome = await self._attempt(
                method,
                url,
                params,
                data,
                upload,
                accept,
                min(policy.per_attempt_timeout, remaining),
                downloading,
                cancel,
            )
            if outcome.kind == AttemptOutcomeKind.success:
                return outcome.response
            if outcome.kind == AttemptOutcomeKind.fatal:
                raise_for_status(outcome.response, glossary, downloading)

            if attempt >= policy.max_attempts:
                self.logger.error(f"{method} {path} failed after {attempt} attempts")
                self._raise_exhausted(outcome, glossary, downloading)

            delay = self._calculate_delay(attempt)
            if loop.time() + delay >= deadline:
                self.logger.error(f"{method} {path} has no time left for another attempt")
                self._raise_exhausted(outcome, glossary, downloading)

            if outcome.response is not None:
                outcome.response.close()
            self.logger.debug(f"Retrying {method} {path} in {delay:.2f}s (attempt {attempt + 1})")
            await cancellation.sleep(delay, cancel)
