"""Unit tests for N8nHttpClient, response processing and N8nApiService."""

import asyncio
import json
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiohttp import ClientError

from config import env_manager
from config.types import N8nConnectionSettings
from plugins.n8n.client import (
    API_KEY_HEADER,
    N8nApiService,
    N8nHttpClient,
    process_rest_response,
)
from plugins.n8n.errors import N8nApiError


def mock_response(status, body):
    response = MagicMock()
    response.status = status
    response.text = AsyncMock(return_value=body if isinstance(body, str) else json.dumps(body))
    context_manager = MagicMock()
    context_manager.__aenter__ = AsyncMock(return_value=response)
    context_manager.__aexit__ = AsyncMock(return_value=False)
    return context_manager


@pytest.fixture
def mock_session():
    with patch("plugins.n8n.client.aiohttp.TCPConnector"), \
         patch("plugins.n8n.client.aiohttp.ClientSession") as mock_client_session:
        session = MagicMock()
        session.close = AsyncMock()
        mock_client_session.return_value = session
        yield session


class TestProcessRestResponse:
    def test_success_with_json(self):
        assert process_rest_response('{"id": "1"}', 200) == {"success": True, "data": {"id": "1"}}

    def test_success_with_empty_body(self):
        assert process_rest_response("", 204) == {"success": True, "data": None}

    def test_invalid_json(self):
        result = process_rest_response("not json", 200)
        assert result["success"] is False
        assert result["error"].startswith("Failed to parse response")
        assert result["raw_output"] == "not json"

    def test_not_found_uses_n8n_message(self):
        result = process_rest_response('{"message": "Not Found"}', 404)
        assert result["error"] == "Resource not found: Not Found"

    def test_unauthorized(self):
        result = process_rest_response('{"message": "unauthorized"}', 401)
        assert result["error"] == "Unauthorized (check the n8n API key): unauthorized"

    def test_other_status_with_plain_text(self):
        result = process_rest_response("Bad gateway", 502)
        assert result["error"] == "HTTP 502: Bad gateway"


class TestN8nHttpClient:
    def test_default_configuration(self):
        client = N8nHttpClient()

        assert client.total_connections == 100
        assert client.per_host_connections == 30
        assert client.request_timeout == 30
        assert client.max_retries == 3
        assert client.retry_statuses == [429, 500, 502, 503, 504]

    @pytest.mark.asyncio
    async def test_session_not_initialized_error(self):
        client = N8nHttpClient()

        with pytest.raises(RuntimeError, match="N8nHttpClient session not initialized"):
            await client.get("http://localhost:5678/api/v1/workflows")

    @pytest.mark.asyncio
    async def test_context_manager_closes_session(self, mock_session):
        async with N8nHttpClient() as client:
            assert client._session is mock_session

        mock_session.close.assert_awaited_once()
        assert client._session is None

    @pytest.mark.asyncio
    async def test_successful_request(self, mock_session):
        mock_session.request = MagicMock(return_value=mock_response(200, {"id": "wf1"}))

        async with N8nHttpClient() as client:
            result = await client.put(
                "http://n8n/api/v1/workflows/wf1",
                headers={API_KEY_HEADER: "key"},
                json={"name": "x"},
            )

        assert result["success"] is True
        assert result["data"] == {"id": "wf1"}
        assert result["status_code"] == 200
        mock_session.request.assert_called_once_with(
            "PUT",
            "http://n8n/api/v1/workflows/wf1",
            headers={API_KEY_HEADER: "key"},
            json={"name": "x"},
        )

    @pytest.mark.asyncio
    async def test_error_status_is_reported_not_raised(self, mock_session):
        mock_session.request = MagicMock(return_value=mock_response(404, {"message": "Not Found"}))

        async with N8nHttpClient(max_retries=0) as client:
            result = await client.get("http://n8n/api/v1/workflows/missing")

        assert result["success"] is False
        assert result["status_code"] == 404
        assert result["error"] == "Resource not found: Not Found"

    @pytest.mark.asyncio
    async def test_retries_on_retry_status(self, mock_session):
        mock_session.request = MagicMock(
            side_effect=[mock_response(503, "busy"), mock_response(200, {"ok": True})]
        )

        with patch("plugins.n8n.client.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            async with N8nHttpClient(max_retries=2) as client:
                result = await client.get("http://n8n/api/v1/workflows")

        assert result["success"] is True
        assert mock_session.request.call_count == 2
        mock_sleep.assert_awaited_once_with(0.5)

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, mock_session):
        mock_session.request = MagicMock(side_effect=ClientError("connection refused"))

        async with N8nHttpClient(max_retries=3) as client:
            result = await client.get("http://n8n/api/v1/workflows")

        assert result == {
            "success": False,
            "error": "Request failed after 1 attempts: connection refused",
            "status_code": 0,
            "raw_response": None,
        }
        assert mock_session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_timeouts_are_retried(self, mock_session):
        mock_session.request = MagicMock(side_effect=asyncio.TimeoutError())

        with patch("plugins.n8n.client.asyncio.sleep", new_callable=AsyncMock):
            async with N8nHttpClient(max_retries=2) as client:
                result = await client.get("http://n8n/api/v1/workflows")

        assert result["success"] is False
        assert result["error"] == "Request failed after 3 attempts: TimeoutError"
        assert mock_session.request.call_count == 3


@pytest.fixture
def mock_http():
    """Patch N8nHttpClient inside the service and expose its request mock."""
    with patch("plugins.n8n.client.N8nHttpClient") as client_cls:
        client = MagicMock()
        client.request = AsyncMock(return_value={"success": True, "data": None, "status_code": 200})
        client_cls.return_value.__aenter__ = AsyncMock(return_value=client)
        client_cls.return_value.__aexit__ = AsyncMock(return_value=False)
        yield client_cls, client


def make_service(**overrides):
    settings = {"api_url": "http://n8n:5678/api/v1/", "api_key": "secret", "request_timeout": 5, "max_retries": 1}
    settings.update(overrides)
    return N8nApiService(**settings)


class TestN8nApiService:
    def test_settings(self):
        service = make_service()
        assert service.api_url == "http://n8n:5678/api/v1"
        assert service.api_key == "secret"
        assert service.request_timeout == 5
        assert service.max_retries == 1

    def test_defaults_come_from_configuration(self):
        with patch("plugins.n8n.client.env_manager") as mock_env:
            mock_env.get_n8n_settings.return_value = N8nConnectionSettings(
                api_url="http://configured/api/v1/",
                api_key="from-env",
                request_timeout=12,
            )
            service = N8nApiService()

        mock_env.load.assert_called_once_with()
        assert service.api_url == "http://configured/api/v1"
        assert service.api_key == "from-env"
        assert service.request_timeout == 12
        assert service.max_retries == 0

    def test_api_key_is_read_from_os_environment(self):
        with patch.dict(os.environ, {"N8N_API_KEY": "secret-from-env"}), patch.dict(
            env_manager.n8n_parameters
        ):
            service = N8nApiService()

        assert service.api_key == "secret-from-env"

    def test_out_of_range_settings_are_rejected(self):
        with patch.dict(os.environ, {"N8N_REQUEST_TIMEOUT": "0"}), patch.dict(
            env_manager.n8n_parameters
        ):
            with pytest.raises(N8nApiError, match="Invalid n8n connection settings"):
                N8nApiService()

    @pytest.mark.asyncio
    async def test_missing_api_key(self, mock_http):
        client_cls, _ = mock_http
        service = make_service(api_key="")

        with pytest.raises(N8nApiError, match="n8n API key is not configured"):
            await service.get_workflow("wf1")
        client_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_request_sends_key_and_url(self, mock_http):
        client_cls, client = mock_http
        client.request.return_value = {"success": True, "data": {"id": "wf1"}, "status_code": 200}

        workflow = await make_service().get_workflow("wf1")

        assert workflow == {"id": "wf1"}
        client_cls.assert_called_once_with(request_timeout=5, max_retries=1)
        client.request.assert_awaited_once_with(
            "GET",
            "http://n8n:5678/api/v1/workflows/wf1",
            headers={API_KEY_HEADER: "secret", "Accept": "application/json"},
            params=None,
            json=None,
        )

    @pytest.mark.asyncio
    async def test_failure_raises_with_status(self, mock_http):
        _, client = mock_http
        client.request.return_value = {
            "success": False,
            "error": "Resource not found: Not Found",
            "status_code": 404,
        }

        with pytest.raises(N8nApiError) as exc_info:
            await make_service().get_workflow("missing")

        assert exc_info.value.message == "Failed to get workflow missing: Resource not found: Not Found"
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_transport_failure_has_no_status(self, mock_http):
        _, client = mock_http
        client.request.return_value = {"success": False, "error": "Request failed", "status_code": 0}

        with pytest.raises(N8nApiError) as exc_info:
            await make_service().check_connectivity()
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_list_endpoints_unwrap_data(self, mock_http):
        _, client = mock_http
        client.request.return_value = {
            "success": True,
            "data": {"data": [{"id": "1"}, {"id": "2"}], "nextCursor": None},
            "status_code": 200,
        }

        workflows = await make_service().get_workflows()
        assert [wf["id"] for wf in workflows] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_execute_workflow_wraps_input(self, mock_http):
        _, client = mock_http
        await make_service().execute_workflow("wf1")

        args, kwargs = client.request.call_args
        assert args == ("POST", "http://n8n:5678/api/v1/workflows/wf1/run")
        assert kwargs["json"] == {"inputData": {}}

    @pytest.mark.asyncio
    async def test_list_executions_filters(self, mock_http):
        _, client = mock_http
        await make_service().list_executions(workflow_id="wf1", status="error", limit=5, include_data=True)

        _, kwargs = client.request.call_args
        assert kwargs["params"] == {
            "workflowId": "wf1",
            "status": "error",
            "limit": 5,
            "includeData": "true",
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method, args, expected",
        [
            ("activate_workflow", ("wf1",), ("POST", "/workflows/wf1/activate")),
            ("deactivate_workflow", ("wf1",), ("POST", "/workflows/wf1/deactivate")),
            ("delete_workflow", ("wf1",), ("DELETE", "/workflows/wf1")),
            ("create_workflow", ({"name": "x"},), ("POST", "/workflows")),
            ("update_workflow", ("wf1", {"name": "x"}), ("PUT", "/workflows/wf1")),
            ("get_execution", ("7",), ("GET", "/executions/7")),
            ("cancel_execution", ("7",), ("POST", "/executions/7/stop")),
            ("delete_execution", ("7",), ("DELETE", "/executions/7")),
        ],
    )
    async def test_endpoints(self, mock_http, method, args, expected):
        _, client = mock_http
        await getattr(make_service(), method)(*args)

        call_args, _ = client.request.call_args
        assert call_args == (expected[0], "http://n8n:5678/api/v1" + expected[1])
