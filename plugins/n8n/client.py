"""n8n REST API client.

N8nHttpClient wraps an aiohttp session and turns every HTTP exchange into a
standardized response dict. N8nApiService sits on top of it with one
coroutine per remote operation and raises N8nApiError on failure.
"""

import json
import logging
import asyncio
from typing import Dict, Any, Optional, List

import aiohttp
from pydantic import ValidationError

from config import env_manager
from plugins.n8n.errors import N8nApiError

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-N8N-API-KEY"


def process_rest_response(response_text: str, status_code: int) -> Dict[str, Any]:
    """Process a REST API response and standardize error handling.

    Args:
        response_text: Raw response text from the API
        status_code: HTTP status code

    Returns:
        Dictionary with standardized response format:
        {
            "success": bool,
            "data": Optional[Any],       # Present on success
            "error": Optional[str],      # Present on failure
            "raw_output": Optional[str]  # Present on failure or parse error
        }
    """
    if 200 <= status_code < 300:
        if not response_text or not response_text.strip():
            return {"success": True, "data": None}
        try:
            return {"success": True, "data": json.loads(response_text)}
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse successful response as JSON: {e}")
            return {
                "success": False,
                "error": f"Failed to parse response: {e}",
                "raw_output": response_text,
            }

    # n8n reports errors as {"message": "..."}
    message = response_text
    try:
        body = json.loads(response_text)
        if isinstance(body, dict) and body.get("message"):
            message = body["message"]
    except (json.JSONDecodeError, TypeError):
        pass

    if status_code == 404:
        error = "Resource not found"
        if message:
            error += f": {message}"
    elif status_code == 401:
        error = f"Unauthorized (check the n8n API key): {message}"
    else:
        error = f"HTTP {status_code}: {message}"

    return {"success": False, "error": error, "raw_output": response_text}


class N8nHttpClient:
    """HTTP client for the n8n REST API.

    Provides connection pooling, optional retries with exponential backoff
    and standardized response processing. Use it as an async context manager:

        async with N8nHttpClient() as client:
            response = await client.get(url, headers=headers)
            data = response.get("data")
    """

    def __init__(
        self,
        total_connections: int = 100,
        per_host_connections: int = 30,
        dns_cache_ttl: int = 300,
        request_timeout: int = 30,
        max_retries: int = 3,
        retry_backoff_factor: float = 0.5,
        retry_statuses: Optional[List[int]] = None,
    ):
        """Initialize the N8nHttpClient.

        Args:
            total_connections: Total connection pool limit
            per_host_connections: Per-host connection limit
            dns_cache_ttl: DNS cache TTL in seconds
            request_timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts
            retry_backoff_factor: Exponential backoff factor for retries
            retry_statuses: HTTP status codes that should trigger retries
        """
        self.total_connections = total_connections
        self.per_host_connections = per_host_connections
        self.dns_cache_ttl = dns_cache_ttl
        self.request_timeout = request_timeout
        self.max_retries = max_retries
        self.retry_backoff_factor = retry_backoff_factor
        self.retry_statuses = retry_statuses or [429, 500, 502, 503, 504]

        self._session: Optional[aiohttp.ClientSession] = None
        self._connector: Optional[aiohttp.TCPConnector] = None

    async def __aenter__(self) -> "N8nHttpClient":
        await self._initialize_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self._cleanup_session()

    async def _initialize_session(self) -> None:
        """Initialize the HTTP session with connection pooling."""
        if self._session is not None:
            return

        self._connector = aiohttp.TCPConnector(
            limit=self.total_connections,
            limit_per_host=self.per_host_connections,
            ttl_dns_cache=self.dns_cache_ttl,
            use_dns_cache=True,
            keepalive_timeout=30,
        )

        timeout = aiohttp.ClientTimeout(total=float(self.request_timeout))

        self._session = aiohttp.ClientSession(
            connector=self._connector,
            timeout=timeout,
            raise_for_status=False,  # We handle status codes manually
        )

        logger.debug(
            f"Initialized N8nHttpClient session with {self.total_connections} total connections, "
            f"{self.per_host_connections} per-host connections"
        )

    async def _cleanup_session(self) -> None:
        """Close the HTTP session; the session owns and closes the connector."""
        if self._session:
            await self._session.close()
            self._session = None
        self._connector = None

        logger.debug("Cleaned up N8nHttpClient session")

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        **kwargs,
    ) -> Dict[str, Any]:
        """Make an HTTP request with retry logic and standardized error handling.

        HTTP error statuses never raise; they are reported in the result.

        Returns:
            Dictionary with standardized response format:
            {
                "success": bool,
                "data": Optional[Any],       # Present on success
                "error": Optional[str],      # Present on failure
                "status_code": int,          # HTTP status code, 0 on transport failure
                "raw_response": Optional[str]
            }
        """
        if not self._session:
            raise RuntimeError("N8nHttpClient session not initialized. Use 'async with' context manager.")

        last_exception = None

        for attempt in range(self.max_retries + 1):
            try:
                if attempt > 0:
                    delay = self.retry_backoff_factor * (2 ** (attempt - 1))
                    logger.debug(
                        f"Retrying request after {delay:.2f}s delay "
                        f"(attempt {attempt + 1}/{self.max_retries + 1})"
                    )
                    await asyncio.sleep(delay)

                # Only pass the arguments that were given
                request_kwargs: Dict[str, Any] = {}
                if headers is not None:
                    request_kwargs["headers"] = headers
                if params is not None:
                    request_kwargs["params"] = params
                if json is not None:
                    request_kwargs["json"] = json
                request_kwargs.update(kwargs)

                async with self._session.request(method.upper(), url, **request_kwargs) as response:
                    response_text = await response.text()
                    status_code = response.status

                    logger.debug(f"{method.upper()} {url} -> {status_code}")

                    if attempt < self.max_retries and status_code in self.retry_statuses:
                        logger.warning(f"Request failed with status {status_code}, will retry")
                        continue

                    result = process_rest_response(response_text, status_code)
                    result["status_code"] = status_code
                    result["raw_response"] = response_text
                    return result

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_exception = e
                logger.warning(f"HTTP client error on attempt {attempt + 1}: {e}")

                # Only timeouts are worth retrying
                if not isinstance(e, (aiohttp.ServerTimeoutError, asyncio.TimeoutError)):
                    break

        error_msg = f"Request failed after {attempt + 1} attempts"
        if last_exception:
            error_msg += f": {str(last_exception) or type(last_exception).__name__}"

        return {
            "success": False,
            "error": error_msg,
            "status_code": 0,
            "raw_response": None,
        }

    async def get(self, url: str, **kwargs) -> Dict[str, Any]:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> Dict[str, Any]:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs) -> Dict[str, Any]:
        return await self.request("PUT", url, **kwargs)

    async def delete(self, url: str, **kwargs) -> Dict[str, Any]:
        return await self.request("DELETE", url, **kwargs)


def _unwrap_list(data: Any) -> List[Dict[str, Any]]:
    """n8n wraps list responses as {"data": [...], "nextCursor": ...}."""
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        return data["data"]
    if isinstance(data, list):
        return data
    return []


class N8nApiService:
    """Coroutines for the n8n REST operations used by the tools.

    Connection settings default to the ``N8N_*`` configuration; the API key
    is only required once a request is made.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        request_timeout: Optional[int] = None,
        max_retries: Optional[int] = None,
    ):
        env_manager.load()
        try:
            settings = env_manager.get_n8n_settings()
        except ValidationError as e:
            raise N8nApiError(f"Invalid n8n connection settings: {e}") from e

        self.api_url = (api_url or settings.api_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.api_key
        self.request_timeout = request_timeout if request_timeout is not None else settings.request_timeout
        self.max_retries = max_retries if max_retries is not None else settings.max_retries

    def _build_url(self, path: str) -> str:
        return f"{self.api_url}/{path.lstrip('/')}"

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Any:
        if not self.api_key:
            raise N8nApiError(
                f"{operation}: n8n API key is not configured. "
                "Set N8N_API_KEY in the environment or a .env file"
            )

        headers = {API_KEY_HEADER: self.api_key, "Accept": "application/json"}
        url = self._build_url(path)

        async with N8nHttpClient(
            request_timeout=self.request_timeout, max_retries=self.max_retries
        ) as client:
            result = await client.request(method, url, headers=headers, params=params, json=json)

        if not result.get("success"):
            raise N8nApiError(
                f"{operation}: {result.get('error', 'Unknown error')}",
                status_code=result.get("status_code") or None,
            )
        return result.get("data")

    async def check_connectivity(self) -> None:
        await self._request("GET", "/workflows", "Failed to connect to n8n API", params={"limit": 1})

    async def get_workflows(self) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/workflows", "Failed to list workflows")
        return _unwrap_list(data)

    async def get_workflow(self, workflow_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/workflows/{workflow_id}", f"Failed to get workflow {workflow_id}")

    async def create_workflow(self, workflow: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/workflows", "Failed to create workflow", json=workflow)

    async def update_workflow(self, workflow_id: str, workflow: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request(
            "PUT", f"/workflows/{workflow_id}", f"Failed to update workflow {workflow_id}", json=workflow
        )

    async def delete_workflow(self, workflow_id: str) -> Any:
        return await self._request("DELETE", f"/workflows/{workflow_id}", f"Failed to delete workflow {workflow_id}")

    async def activate_workflow(self, workflow_id: str) -> Dict[str, Any]:
        return await self._request(
            "POST", f"/workflows/{workflow_id}/activate", f"Failed to activate workflow {workflow_id}"
        )

    async def deactivate_workflow(self, workflow_id: str) -> Dict[str, Any]:
        return await self._request(
            "POST", f"/workflows/{workflow_id}/deactivate", f"Failed to deactivate workflow {workflow_id}"
        )

    async def execute_workflow(self, workflow_id: str, input_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/workflows/{workflow_id}/run",
            f"Failed to execute workflow {workflow_id}",
            json={"inputData": input_data or {}},
        )

    async def get_execution(self, execution_id: str) -> Dict[str, Any]:
        return await self._request(
            "GET",
            f"/executions/{execution_id}",
            f"Failed to get execution {execution_id}",
            params={"includeData": "true"},
        )

    async def list_executions(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        include_data: bool = False,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {}
        if workflow_id:
            params["workflowId"] = workflow_id
        if status:
            params["status"] = status
        if limit:
            params["limit"] = int(limit)
        if include_data:
            params["includeData"] = "true"

        data = await self._request("GET", "/executions", "Failed to list executions", params=params or None)
        return _unwrap_list(data)

    async def cancel_execution(self, execution_id: str) -> Any:
        return await self._request(
            "POST", f"/executions/{execution_id}/stop", f"Failed to cancel execution {execution_id}"
        )

    async def delete_execution(self, execution_id: str) -> Any:
        return await self._request(
            "DELETE", f"/executions/{execution_id}", f"Failed to delete execution {execution_id}"
        )
