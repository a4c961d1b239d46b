import base64
import json
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
import requests
import structlog
from typing import Dict, Any, List, Optional
from taskengine.config import HTTP_CALL_THREADS, HTTP_CONNECT_TIMEOUT_S, DEFAULT_SERVICE_TIMEOUT_S
from taskengine.models.enums import AuthType, HttpMethod
from taskengine.models.service_config import ServiceConfiguration
from taskengine.schemas.responses import ServiceResponse

logger = structlog.get_logger(__name__)

_call_pool = ThreadPoolExecutor(max_workers=HTTP_CALL_THREADS, thread_name_prefix="http-call")

class ServiceCallError(RuntimeError):
    def __init__(self, code: str, message: str, status_code: int):
        super().__init__(message)
        self.code = code
        self.status_code = status_code

class HTTPExecutionBackend:
    """Performs the real outbound call described by a REAL service configuration."""

    def __init__(self, http: Optional[requests.Session] = None):
        self.http = http or requests

    def _headers(self, config: ServiceConfiguration) -> Dict[str, str]:
        h = {"Content-Type": "application/json", "Accept": "application/json"}
        auth = config.authentication or {}
        auth_type = auth.get("type") or AuthType.NONE.value

        if auth_type == AuthType.API_KEY.value:
            api_key = auth.get("api_key", "")
            if api_key:
                h[auth.get("header_name") or "X-API-Key"] = api_key
        elif auth_type in (AuthType.BEARER.value, "bearer_token"):
            token = auth.get("token") or auth.get("bearer_token", "")
            if token:
                h["Authorization"] = f"Bearer {token}"
        elif auth_type == AuthType.BASIC.value:
            username = auth.get("username", "")
            password = auth.get("password", "")
            if username or password:
                encoded = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
                h["Authorization"] = f"Basic {encoded}"
        elif auth_type == AuthType.CUSTOM_HEADER.value:
            name, value = auth.get("header_name", ""), auth.get("header_value", "")
            if name and value:
                h[name] = value

        # extra headers ride along whatever the primary scheme is
        for name, value in (auth.get("headers") or {}).items():
            h[name] = str(value)
        return h

    @staticmethod
    def _query_params(input_data: Dict[str, Any]) -> Dict[str, str]:
        params = {}
        for key, value in (input_data or {}).items():
            params[key] = value if isinstance(value, str) else json.dumps(value)
        return params

    @staticmethod
    def _parse_body(resp: requests.Response) -> Any:
        content_type = resp.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                return resp.json()
            except ValueError:
                return resp.text
        return resp.text

    @staticmethod
    def _method(config: ServiceConfiguration) -> str:
        raw = config.http_method or HttpMethod.POST
        if isinstance(raw, HttpMethod):
            return raw.value
        try:
            return HttpMethod(str(raw).strip().upper()).value
        except ValueError:
            raise ServiceCallError("INVALID_METHOD", f"Unsupported HTTP method: {raw}", 400)

    def _send(self, url: str, input_data: Dict[str, Any], config: ServiceConfiguration) -> ServiceResponse:
        method = self._method(config)
        timeout_s = float(config.timeout_seconds or DEFAULT_SERVICE_TIMEOUT_S)
        timeout_error = ServiceCallError(
            "SERVICE_TIMEOUT",
            f"Request timeout after {config.timeout_seconds or DEFAULT_SERVICE_TIMEOUT_S} seconds",
            408,
        )
        # requests applies the tuple per socket operation; the overall deadline is the future's
        kwargs: Dict[str, Any] = {
            "headers": self._headers(config),
            "timeout": (min(HTTP_CONNECT_TIMEOUT_S, timeout_s), timeout_s),
            "stream": True,
        }
        if method == HttpMethod.GET.value:
            if input_data:
                kwargs["params"] = self._query_params(input_data)
        else:
            kwargs["json"] = input_data or {}

        opened: List[requests.Response] = []

        def call() -> requests.Response:
            resp = self.http.request(method, url, **kwargs)
            opened.append(resp)
            resp.content  # body is read inside the deadline too
            return resp

        future = _call_pool.submit(call)
        try:
            resp = future.result(timeout=timeout_s)
        except FutureTimeout:
            future.cancel()
            # closing the socket unblocks the reader thread
            for stalled in opened:
                stalled.close()
            raise timeout_error
        except requests.Timeout:
            raise timeout_error
        except requests.RequestException as e:
            raise ServiceCallError("SERVICE_UNREACHABLE", str(e), 500)

        body = self._parse_body(resp)
        if 200 <= resp.status_code < 300:
            return ServiceResponse(
                status="success",
                data={"message": body} if isinstance(body, str) else body,
                status_code=resp.status_code,
            )

        return ServiceResponse(
            status="error",
            error=body if isinstance(body, str) else json.dumps(body),
            data=body if not isinstance(body, str) else None,
            status_code=resp.status_code,
        )

    def execute(self, endpoint: str, input_data: Dict[str, Any], config: ServiceConfiguration) -> ServiceResponse:
        t0 = time.monotonic()
        url = endpoint or config.endpoint_url
        try:
            if not url:
                raise ServiceCallError("NO_ENDPOINT", "No endpoint URL provided", 500)
            out = self._send(url, input_data, config)
        except ServiceCallError as e:
            logger.warning("service_call_failed", service=config.service_name, code=e.code, error=str(e))
            out = ServiceResponse(status="error", error=str(e), status_code=e.status_code)
        out.execution_time_ms = int((time.monotonic() - t0) * 1000)
        return out
