"""Executor - Sends built calls and decodes their responses.

One mechanism, two entry points:
    execute()       blocks the calling thread and returns or raises
    execute_async() hands the call to a thread pool and reports through
                    an ApiCallback from the worker thread

Both go through _perform(), so validation, transport error translation and
decoding are identical; only suspension differs.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Executor as ThreadPool
from concurrent.futures import ThreadPoolExecutor
from http.cookiejar import CookieJar, DefaultCookiePolicy
from threading import Lock
from typing import Any, Callable, Iterator, Mapping

import httpx

from lakefs_client.auth import AuthScheme, CredentialStore
from lakefs_client.call_builder import CallBuilder
from lakefs_client.calls import ApiCallback, PendingCall
from lakefs_client.decoder import decode_response
from lakefs_client.errors import ApiError, TransportFailure
from lakefs_client.models import ApiResponse, ClientConfig, OperationDescriptor

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192


def _upload_stream(content: bytes, call: PendingCall, callback: ApiCallback) -> Iterator[bytes]:
    """Yield content in chunks, reporting upload progress after each one.

    Stops with a cancellation failure if the call is cancelled mid-upload.
    """
    total = len(content)
    written = 0
    for start in range(0, total, CHUNK_SIZE):
        if call.cancelled:
            raise TransportFailure(f"{call.operation_id} call cancelled", cancelled=True)
        chunk = content[start:start + CHUNK_SIZE]
        yield chunk
        written += len(chunk)
        callback.on_upload_progress(written, total, written == total)


def _convert_headers(response: httpx.Response) -> dict[str, list[str]]:
    """Response headers with lowercase keys and list values."""
    headers: dict[str, list[str]] = {}
    for key, value in response.headers.multi_items():
        headers.setdefault(key.lower(), []).append(value)
    return headers


class ApiClient:
    """HTTP invocation runtime shared by every API facade.

    Usage:
        client = ApiClient(config)
        try:
            response = client.execute(client.build_call_for(GET_RUN, repository="r", run_id="1"))
        finally:
            client.close()

    Or with context manager:
        with ApiClient(config) as client:
            ...

    The thread pool for non-blocking calls can be supplied by the caller
    (and is then left running on close()); otherwise one is created on first
    use, sized by config.max_workers.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        credentials: CredentialStore | None = None,
        auth_schemes: Mapping[str, AuthScheme] | None = None,
        thread_pool: ThreadPool | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Client configuration. Defaults to ClientConfig().
            credentials: Credential store. Defaults to one built from config.credentials.
            auth_schemes: Scheme name -> scheme. Defaults to the lakeFS schemes.
            thread_pool: Pool for execute_async(). Created lazily if None.
            transport: httpx transport override (tests, proxies).
        """
        self._config = config or ClientConfig()
        self._credentials = credentials or CredentialStore.from_config(self._config.credentials)
        self._builder = CallBuilder(self._config, self._credentials, auth_schemes)
        self._client = httpx.Client(**self._build_client_kwargs(transport))

        self._thread_pool = thread_pool
        self._owns_pool = thread_pool is None
        self._pool_lock = Lock()

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client and any thread pool this client created.

        Uses try/finally so the pool is shut down even if closing the HTTP
        client raises.
        """
        try:
            self._client.close()
        finally:
            with self._pool_lock:
                if self._owns_pool and self._thread_pool is not None:
                    self._thread_pool.shutdown(wait=True)
                    self._thread_pool = None

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def credentials(self) -> CredentialStore:
        return self._credentials

    def _build_client_kwargs(self, transport: httpx.BaseTransport | None) -> dict[str, Any]:
        """Build kwargs for httpx.Client including timeout and TLS configuration."""
        config = self._config
        kwargs: dict[str, Any] = {
            "timeout": httpx.Timeout(
                config.timeout,
                connect=config.connect_timeout if config.connect_timeout is not None else config.timeout,
            ),
        }
        # Cookies set by the server are never replayed; session cookies come
        # from the credential store.
        kwargs["cookies"] = CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))

        if config.ca_bundle:
            kwargs["verify"] = config.ca_bundle
        elif not config.verify_ssl:
            kwargs["verify"] = False
        # else: use httpx default (True)

        if transport is not None:
            kwargs["transport"] = transport

        return kwargs

    def _pool(self) -> ThreadPool:
        with self._pool_lock:
            if self._thread_pool is None:
                self._thread_pool = ThreadPoolExecutor(
                    max_workers=self._config.max_workers,
                    thread_name_prefix="lakefs-client",
                )
            return self._thread_pool

    # -------------------------------------------------------------------------
    # Building
    # -------------------------------------------------------------------------

    def build_call(self, descriptor: OperationDescriptor, **kwargs: Any) -> PendingCall:
        """See CallBuilder.build_call."""
        return self._builder.build_call(descriptor, **kwargs)

    def build_call_for(
        self,
        descriptor: OperationDescriptor,
        body: Any = None,
        callback: ApiCallback | None = None,
        **params: Any,
    ) -> PendingCall:
        """See CallBuilder.build_call_for."""
        return self._builder.build_call_for(descriptor, body=body, callback=callback, **params)

    # -------------------------------------------------------------------------
    # Executing
    # -------------------------------------------------------------------------

    def execute(self, call: PendingCall) -> ApiResponse:
        """Send a call and block until it completes.

        Progress hooks of a callback bound at build time are invoked on the
        calling thread; its completion hooks are not used.

        Returns:
            ApiResponse with the decoded payload.

        Raises:
            ApiError: Status outside the success range, transport failure
                (TransportFailure), or undecodable body (DeserializationFailure).
            RuntimeError: If the call was already executed.
        """
        call.claim()
        return self._perform(call, call.callback)

    def execute_async(
        self,
        call: PendingCall,
        callback: ApiCallback | None = None,
    ) -> PendingCall:
        """Dispatch a call to the thread pool and return it without blocking.

        Exactly one of callback.on_success / callback.on_failure runs on the
        worker thread, unless the call is cancelled before it starts, in
        which case neither runs. A cancelled call never reports success.

        Args:
            call: A call from build_call().
            callback: Completion and progress hooks. Defaults to the callback
                bound at build time.

        Returns:
            The same call, now cancellable and waitable.

        Raises:
            RuntimeError: If the call was already executed.
        """
        callback = callback or call.callback
        call.claim()
        future = self._pool().submit(self._run_async, call, callback)
        call.attach_future(future)
        return call

    def _run_async(self, call: PendingCall, callback: ApiCallback | None) -> ApiResponse | None:
        """Worker body for execute_async()."""
        try:
            response = self._perform(call, callback)
        except ApiError as e:
            if callback is not None:
                self._notify(callback.on_failure, e, call)
            return None
        except Exception as e:
            logger.exception("%s failed unexpectedly", call.operation_id)
            failure = TransportFailure(f"{call.operation_id} failed: {e!r}")
            failure.__cause__ = e
            if callback is not None:
                self._notify(callback.on_failure, failure, call)
            return None

        if call.cancelled:
            logger.warning("%s cancelled after completion, dropping result", call.operation_id)
            if callback is not None:
                self._notify(callback.on_failure, self._cancelled(call), call)
            return None

        if callback is not None:
            self._notify(callback.on_success, response, call)
        return response

    @staticmethod
    def _notify(hook: Callable[[Any], None], value: Any, call: PendingCall) -> None:
        try:
            hook(value)
        except Exception:
            logger.exception("Callback %s for %s raised", hook.__name__, call.operation_id)
            raise

    @staticmethod
    def _cancelled(call: PendingCall) -> TransportFailure:
        return TransportFailure(f"{call.operation_id} call cancelled", cancelled=True)

    def _to_httpx_request(self, call: PendingCall, callback: ApiCallback | None) -> httpx.Request:
        request = call.request
        headers = dict(request.headers)
        if request.cookies:
            cookie_header = "; ".join(f"{name}={value}" for name, value in request.cookies.items())
            existing = headers.get("Cookie")
            headers["Cookie"] = f"{existing}; {cookie_header}" if existing else cookie_header

        content: bytes | Iterator[bytes] | None = request.content
        if request.content and callback is not None:
            # Explicit Content-Length keeps httpx from switching to chunked encoding
            headers["Content-Length"] = str(len(request.content))
            content = _upload_stream(request.content, call, callback)

        return self._client.build_request(
            method=request.method,
            url=request.url,
            params=list(request.query) if request.query else None,
            headers=headers,
            content=content,
        )

    def _perform(self, call: PendingCall, callback: ApiCallback | None) -> ApiResponse:
        """Send one call, read the full body, and decode it.

        Raises:
            ApiError: As for execute().
        """
        if call.cancelled:
            raise self._cancelled(call)

        request = call.request
        operation_id = request.operation_id
        http_request = self._to_httpx_request(call, callback)

        logger.debug("%s: %s %s", operation_id, request.method, request.url)
        start_time = time.perf_counter()

        try:
            http_response = self._client.send(http_request, stream=True)
            try:
                body = self._read_body(http_response, call, callback)
            finally:
                http_response.close()
        except httpx.TimeoutException as e:
            raise TransportFailure(f"{operation_id} request timeout: {e}", timed_out=True) from e
        except httpx.ConnectError as e:
            raise TransportFailure(f"{operation_id} connection error: {e}") from e
        except httpx.RequestError as e:
            raise TransportFailure(f"{operation_id} request error: {e}") from e
        except httpx.StreamError as e:
            raise TransportFailure(f"{operation_id} stream error: {e}") from e

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(
            "%s: HTTP %d in %.1fms (%d bytes)",
            operation_id, http_response.status_code, elapsed_ms, len(body),
        )

        return decode_response(
            call.descriptor,
            http_response.status_code,
            _convert_headers(http_response),
            body,
        )

    def _read_body(
        self,
        response: httpx.Response,
        call: PendingCall,
        callback: ApiCallback | None,
    ) -> bytes:
        """Read a streamed body, honouring cancellation between chunks."""
        try:
            content_length = int(response.headers.get("content-length", -1))
        except ValueError:
            content_length = -1

        chunks: list[bytes] = []
        bytes_read = 0
        for chunk in response.iter_bytes(CHUNK_SIZE):
            if call.cancelled:
                raise self._cancelled(call)
            chunks.append(chunk)
            bytes_read += len(chunk)
            if callback is not None:
                callback.on_download_progress(bytes_read, content_length, False)

        if call.cancelled:
            raise self._cancelled(call)
        if callback is not None:
            callback.on_download_progress(bytes_read, content_length, True)
        return b"".join(chunks)
