"""Tests for the blocking path of lakefs_client.executor.ApiClient.

Tests cover:
- Sending built calls through httpx and decoding the result
- Transport error translation (timeout, connect, cancellation)
- Upload and download progress reporting
- Cookie handling (credential cookies sent, server cookies never replayed)
- httpx.Client construction (timeouts, TLS)
"""

from unittest.mock import patch

import httpx
import pytest

from lakefs_client.actions_api import GET_RUN, GET_RUN_HOOK_OUTPUT, LIST_REPOSITORY_RUNS
from lakefs_client.auth import CredentialStore
from lakefs_client.errors import ApiError, DeserializationFailure, MissingParameter, TransportFailure
from lakefs_client.executor import CHUNK_SIZE, ApiClient
from lakefs_client.models import (
    ActionRun,
    ClientConfig,
    OperationDescriptor,
    ParamLocation,
    ParameterSpec,
)
from tests.conftest import RecordingCallback, json_response, make_client

PUT_OUTPUT = OperationDescriptor(
    operation_id="putHookOutput",
    method="PUT",
    path="/repositories/{repository}/outputs",
    parameters=(ParameterSpec("repository", ParamLocation.PATH, required=True),),
    content_types=("application/octet-stream",),
    body_required=True,
)

RUN_PAYLOAD = {"run_id": "run123", "status": "completed"}


class TestExecute:
    def test_get_run(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return json_response(200, RUN_PAYLOAD)

        with make_client(handler) as client:
            response = client.execute(
                client.build_call_for(GET_RUN, repository="repo1", run_id="run123")
            )

        assert response.status_code == 200
        assert isinstance(response.data, ActionRun)
        assert response.data.status == "completed"
        assert response.header("content-type") == "application/json"

        request = seen[0]
        assert request.method == "GET"
        assert str(request.url) == "http://lakefs.test/api/v1/repositories/repo1/actions/runs/run123"
        assert request.headers["Accept"] == "application/json"
        assert request.headers["User-Agent"] == "lakefs-client-python/0.1.0"
        assert "Content-Type" not in request.headers

    def test_query_parameters_sent(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return json_response(200, {"results": []})

        with make_client(handler) as client:
            client.execute(
                client.build_call_for(
                    LIST_REPOSITORY_RUNS, repository="repo1", amount=5, branch="main"
                )
            )

        params = seen[0].url.params
        assert params["amount"] == "5"
        assert params["branch"] == "main"
        assert "after" not in params

    def test_error_status_raises_api_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return json_response(404, {})

        with make_client(handler) as client:
            with pytest.raises(ApiError) as exc_info:
                client.execute(client.build_call_for(GET_RUN, repository="repo1", run_id="nope"))

        assert exc_info.value.status_code == 404
        assert exc_info.value.body == b"{}"
        assert exc_info.value.transport_failure is False

    def test_response_headers_lowercase_lists(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json=RUN_PAYLOAD,
                headers=[("X-Request-Id", "a"), ("Set-Cookie", "a=1"), ("Set-Cookie", "b=2")],
            )

        with make_client(handler) as client:
            response = client.execute(client.build_call_for(GET_RUN, repository="r", run_id="1"))

        assert response.headers["x-request-id"] == ["a"]
        assert response.headers["set-cookie"] == ["a=1", "b=2"]

    def test_undecodable_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, content=b"{oops", headers={"Content-Type": "application/json"}
            )

        with make_client(handler) as client:
            with pytest.raises(DeserializationFailure):
                client.execute(client.build_call_for(GET_RUN, repository="r", run_id="1"))

    def test_missing_parameter_raised_before_sending(self) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return json_response(200, RUN_PAYLOAD)

        with make_client(handler) as client:
            with pytest.raises(MissingParameter):
                client.build_call_for(GET_RUN, repository="r", run_id=None)

        assert calls == []

    def test_call_executes_once(self) -> None:
        with make_client(lambda request: json_response(200, RUN_PAYLOAD)) as client:
            call = client.build_call_for(GET_RUN, repository="r", run_id="1")
            client.execute(call)
            assert call.executed
            with pytest.raises(RuntimeError, match="Already executed"):
                client.execute(call)

    def test_cancelled_before_execute(self) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return json_response(200, RUN_PAYLOAD)

        with make_client(handler) as client:
            call = client.build_call_for(GET_RUN, repository="r", run_id="1")
            call.cancel()
            with pytest.raises(TransportFailure) as exc_info:
                client.execute(call)

        assert exc_info.value.cancelled is True
        assert calls == []


class TestTransportFailures:
    def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        with make_client(handler) as client:
            with pytest.raises(TransportFailure) as exc_info:
                client.execute(client.build_call_for(GET_RUN, repository="r", run_id="1"))

        error = exc_info.value
        assert error.timed_out is True
        assert error.transport_failure is True
        assert error.status_code is None
        assert "getRun" in error.message

    def test_connect_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with make_client(handler) as client:
            with pytest.raises(TransportFailure) as exc_info:
                client.execute(client.build_call_for(GET_RUN, repository="r", run_id="1"))

        assert exc_info.value.timed_out is False
        assert exc_info.value.cancelled is False
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    def test_transport_failure_is_api_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.RemoteProtocolError("peer closed", request=request)

        with make_client(handler) as client:
            with pytest.raises(ApiError):
                client.execute(client.build_call_for(GET_RUN, repository="r", run_id="1"))


class TestProgress:
    def test_download_progress(self) -> None:
        payload = bytes(range(256)) * 100

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, content=payload, headers={"Content-Type": "application/octet-stream"}
            )

        callback = RecordingCallback()
        with make_client(handler) as client:
            call = client.build_call_for(
                GET_RUN_HOOK_OUTPUT, repository="r", run_id="1", hook_run_id="h", callback=callback
            )
            response = client.execute(call)

        assert response.data == payload
        assert callback.download_progress[-1] == (len(payload), len(payload), True)
        assert all(not done for _, _, done in callback.download_progress[:-1])
        read = [n for n, _, _ in callback.download_progress]
        assert read == sorted(read)
        # Blocking calls never use the completion hooks
        assert callback.successes == []

    def test_download_progress_counts_each_chunk(self) -> None:
        """In-memory bodies still report the bytes handed over so far."""
        payload = b"z" * (CHUNK_SIZE * 3 + 10)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=payload)

        callback = RecordingCallback()
        with make_client(handler) as client:
            call = client.build_call_for(
                GET_RUN_HOOK_OUTPUT, repository="r", run_id="1", hook_run_id="h", callback=callback
            )
            client.execute(call)

        total = len(payload)
        assert callback.download_progress == [
            (CHUNK_SIZE, total, False),
            (CHUNK_SIZE * 2, total, False),
            (CHUNK_SIZE * 3, total, False),
            (total, total, False),
            (total, total, True),
        ]

    def test_download_progress_unknown_length(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=httpx.ByteStream(b"abc"))

        callback = RecordingCallback()
        with make_client(handler) as client:
            call = client.build_call_for(
                GET_RUN_HOOK_OUTPUT, repository="r", run_id="1", hook_run_id="h", callback=callback
            )
            assert client.execute(call).data == b"abc"

        assert callback.download_progress[-1] == (3, -1, True)

    def test_upload_progress(self) -> None:
        payload = b"x" * (CHUNK_SIZE * 2 + 100)
        received: list[bytes] = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request.read())
            assert request.headers["Content-Length"] == str(len(payload))
            assert "Transfer-Encoding" not in request.headers
            return httpx.Response(204)

        callback = RecordingCallback()
        with make_client(handler) as client:
            call = client.build_call_for(PUT_OUTPUT, repository="r", body=payload, callback=callback)
            response = client.execute(call)

        assert response.status_code == 204
        assert received == [payload]
        assert callback.upload_progress == [
            (CHUNK_SIZE, len(payload), False),
            (CHUNK_SIZE * 2, len(payload), False),
            (len(payload), len(payload), True),
        ]

    def test_cancel_during_upload(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(204)

        class CancelAfterFirstChunk(RecordingCallback):
            call = None

            def on_upload_progress(self, bytes_written: int, content_length: int, done: bool) -> None:
                super().on_upload_progress(bytes_written, content_length, done)
                self.call.cancel()

        callback = CancelAfterFirstChunk()
        payload = b"x" * (CHUNK_SIZE * 4)
        with make_client(handler) as client:
            call = client.build_call_for(PUT_OUTPUT, repository="r", body=payload, callback=callback)
            callback.call = call
            with pytest.raises(TransportFailure) as exc_info:
                client.execute(call)

        assert exc_info.value.cancelled is True
        assert callback.upload_progress == [(CHUNK_SIZE, len(payload), False)]
        assert requests == []

    def test_upload_without_callback_sends_bytes(self) -> None:
        received: list[bytes] = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request.read())
            return httpx.Response(204)

        with make_client(handler) as client:
            client.execute(client.build_call_for(PUT_OUTPUT, repository="r", body=b"data"))

        assert received == [b"data"]


class TestCookies:
    def test_credential_cookie_sent(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return json_response(200, RUN_PAYLOAD)

        store = CredentialStore(api_keys={"cookie_auth": "session-token"})
        with make_client(handler, credentials=store) as client:
            client.execute(client.build_call_for(GET_RUN, repository="r", run_id="1"))

        assert seen[0].headers["Cookie"] == "internal_auth_session=session-token"

    def test_server_cookies_not_replayed(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json=RUN_PAYLOAD, headers={"Set-Cookie": "tracking=abc; Path=/"}
            )

        with make_client(handler) as client:
            client.execute(client.build_call_for(GET_RUN, repository="r", run_id="1"))
            client.execute(client.build_call_for(GET_RUN, repository="r", run_id="2"))

        assert "Cookie" not in seen[1].headers


class TestClientConstruction:
    def test_timeouts(self) -> None:
        with patch("lakefs_client.executor.httpx.Client") as mock_client:
            ApiClient(ClientConfig(timeout=12.0, connect_timeout=3.0))

        timeout = mock_client.call_args.kwargs["timeout"]
        assert timeout.read == 12.0
        assert timeout.connect == 3.0

    def test_connect_timeout_defaults_to_timeout(self) -> None:
        with patch("lakefs_client.executor.httpx.Client") as mock_client:
            ApiClient(ClientConfig(timeout=7.0))

        assert mock_client.call_args.kwargs["timeout"].connect == 7.0

    def test_verify_ssl_disabled(self) -> None:
        with patch("lakefs_client.executor.httpx.Client") as mock_client:
            ApiClient(ClientConfig(verify_ssl=False))

        assert mock_client.call_args.kwargs["verify"] is False

    def test_ca_bundle(self) -> None:
        with patch("lakefs_client.executor.httpx.Client") as mock_client:
            ApiClient(ClientConfig(ca_bundle="/etc/ssl/lakefs-ca.pem"))

        assert mock_client.call_args.kwargs["verify"] == "/etc/ssl/lakefs-ca.pem"

    def test_default_verification(self) -> None:
        with patch("lakefs_client.executor.httpx.Client") as mock_client:
            ApiClient(ClientConfig())

        assert "verify" not in mock_client.call_args.kwargs
        assert "transport" not in mock_client.call_args.kwargs

    def test_credentials_from_config(self) -> None:
        config = ClientConfig(credentials={"username": "AKIA", "password": "secret"})
        with patch("lakefs_client.executor.httpx.Client"):
            client = ApiClient(config)

        assert client.credentials.basic_credentials() == ("AKIA", "secret")

    def test_close_closes_http_client(self) -> None:
        with patch("lakefs_client.executor.httpx.Client") as mock_client:
            with ApiClient(ClientConfig()):
                pass

        mock_client.return_value.close.assert_called_once()
