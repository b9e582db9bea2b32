"""lakeFS actions API.

Each endpoint is one OperationDescriptor; ActionsApi only forwards keyword
arguments to the shared runtime. Every operation comes in three shapes:
    get_run(...)                 -> decoded payload
    get_run_with_http_info(...)  -> ApiResponse (status, headers, payload)
    get_run_async(..., callback) -> PendingCall, result delivered to callback
"""

from __future__ import annotations

from typing import Any

from lakefs_client.calls import ApiCallback, PendingCall
from lakefs_client.executor import ApiClient
from lakefs_client.models import (
    ActionRun,
    ActionRunList,
    ApiResponse,
    HookRunList,
    OperationDescriptor,
    ParamLocation,
    ParameterSpec,
)

AUTH_NAMES = ("basic_auth", "cookie_auth", "jwt_token", "oidc_auth")

_REPOSITORY = ParameterSpec("repository", ParamLocation.PATH, required=True)
_RUN_ID = ParameterSpec("run_id", ParamLocation.PATH, required=True)
_AFTER = ParameterSpec("after", ParamLocation.QUERY)
_AMOUNT = ParameterSpec("amount", ParamLocation.QUERY)

GET_RUN = OperationDescriptor(
    operation_id="getRun",
    method="GET",
    path="/repositories/{repository}/actions/runs/{run_id}",
    parameters=(_REPOSITORY, _RUN_ID),
    accepts=("application/json",),
    auth_names=AUTH_NAMES,
    response_type=ActionRun,
)

GET_RUN_HOOK_OUTPUT = OperationDescriptor(
    operation_id="getRunHookOutput",
    method="GET",
    path="/repositories/{repository}/actions/runs/{run_id}/hooks/{hook_run_id}/output",
    parameters=(
        _REPOSITORY,
        _RUN_ID,
        ParameterSpec("hook_run_id", ParamLocation.PATH, required=True),
    ),
    accepts=("application/octet-stream", "application/json"),
    auth_names=AUTH_NAMES,
    response_type=bytes,
)

LIST_REPOSITORY_RUNS = OperationDescriptor(
    operation_id="listRepositoryRuns",
    method="GET",
    path="/repositories/{repository}/actions/runs",
    parameters=(
        _REPOSITORY,
        _AFTER,
        _AMOUNT,
        ParameterSpec("branch", ParamLocation.QUERY),
        ParameterSpec("commit", ParamLocation.QUERY),
    ),
    accepts=("application/json",),
    auth_names=AUTH_NAMES,
    response_type=ActionRunList,
)

LIST_RUN_HOOKS = OperationDescriptor(
    operation_id="listRunHooks",
    method="GET",
    path="/repositories/{repository}/actions/runs/{run_id}/hooks",
    parameters=(_REPOSITORY, _RUN_ID, _AFTER, _AMOUNT),
    accepts=("application/json",),
    auth_names=AUTH_NAMES,
    response_type=HookRunList,
)

OPERATIONS = {
    op.operation_id: op
    for op in (GET_RUN, GET_RUN_HOOK_OUTPUT, LIST_REPOSITORY_RUNS, LIST_RUN_HOOKS)
}


class ActionsApi:
    """Facade over the actions endpoints."""

    def __init__(self, api_client: ApiClient | None = None) -> None:
        self.api_client = api_client or ApiClient()

    def _execute(self, descriptor: OperationDescriptor, **params: Any) -> ApiResponse:
        call = self.api_client.build_call_for(descriptor, **params)
        return self.api_client.execute(call)

    def _execute_async(
        self,
        descriptor: OperationDescriptor,
        callback: ApiCallback,
        **params: Any,
    ) -> PendingCall:
        # Built (and validated) before the callback is handed over
        call = self.api_client.build_call_for(descriptor, callback=callback, **params)
        return self.api_client.execute_async(call, callback)

    # getRun

    def get_run(self, repository: str, run_id: str) -> ActionRun:
        """Get a run."""
        return self.get_run_with_http_info(repository, run_id).data

    def get_run_with_http_info(self, repository: str, run_id: str) -> ApiResponse:
        return self._execute(GET_RUN, repository=repository, run_id=run_id)

    def get_run_async(self, repository: str, run_id: str, callback: ApiCallback) -> PendingCall:
        return self._execute_async(GET_RUN, callback, repository=repository, run_id=run_id)

    # getRunHookOutput

    def get_run_hook_output(self, repository: str, run_id: str, hook_run_id: str) -> bytes:
        """Get the raw output of a run hook."""
        return self.get_run_hook_output_with_http_info(repository, run_id, hook_run_id).data

    def get_run_hook_output_with_http_info(
        self, repository: str, run_id: str, hook_run_id: str
    ) -> ApiResponse:
        return self._execute(
            GET_RUN_HOOK_OUTPUT, repository=repository, run_id=run_id, hook_run_id=hook_run_id
        )

    def get_run_hook_output_async(
        self, repository: str, run_id: str, hook_run_id: str, callback: ApiCallback
    ) -> PendingCall:
        return self._execute_async(
            GET_RUN_HOOK_OUTPUT, callback,
            repository=repository, run_id=run_id, hook_run_id=hook_run_id,
        )

    # listRepositoryRuns

    def list_repository_runs(
        self,
        repository: str,
        after: str | None = None,
        amount: int | None = None,
        branch: str | None = None,
        commit: str | None = None,
    ) -> ActionRunList:
        """List runs of a repository, optionally filtered by branch or commit."""
        return self.list_repository_runs_with_http_info(
            repository, after=after, amount=amount, branch=branch, commit=commit
        ).data

    def list_repository_runs_with_http_info(
        self,
        repository: str,
        after: str | None = None,
        amount: int | None = None,
        branch: str | None = None,
        commit: str | None = None,
    ) -> ApiResponse:
        return self._execute(
            LIST_REPOSITORY_RUNS,
            repository=repository, after=after, amount=amount, branch=branch, commit=commit,
        )

    def list_repository_runs_async(
        self,
        repository: str,
        callback: ApiCallback,
        after: str | None = None,
        amount: int | None = None,
        branch: str | None = None,
        commit: str | None = None,
    ) -> PendingCall:
        return self._execute_async(
            LIST_REPOSITORY_RUNS, callback,
            repository=repository, after=after, amount=amount, branch=branch, commit=commit,
        )

    # listRunHooks

    def list_run_hooks(
        self,
        repository: str,
        run_id: str,
        after: str | None = None,
        amount: int | None = None,
    ) -> HookRunList:
        """List the hooks executed by a run."""
        return self.list_run_hooks_with_http_info(
            repository, run_id, after=after, amount=amount
        ).data

    def list_run_hooks_with_http_info(
        self,
        repository: str,
        run_id: str,
        after: str | None = None,
        amount: int | None = None,
    ) -> ApiResponse:
        return self._execute(
            LIST_RUN_HOOKS, repository=repository, run_id=run_id, after=after, amount=amount
        )

    def list_run_hooks_async(
        self,
        repository: str,
        run_id: str,
        callback: ApiCallback,
        after: str | None = None,
        amount: int | None = None,
    ) -> PendingCall:
        return self._execute_async(
            LIST_RUN_HOOKS, callback,
            repository=repository, run_id=run_id, after=after, amount=amount,
        )
