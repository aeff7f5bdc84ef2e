"""
CampusSafetyClient — async HTTP client for the Campus Safety API.

Used by the student and admin front ends (and by scripts) to talk to the
API. Every call is bounded by a timeout and every failure surfaces as a
CampusSafetyError subclass, the same hierarchy the server raises:

  httpx.TimeoutException      → OperationTimeout
  other httpx.TransportError  → TransientError
  error response              → class named by the body's "error" field,
                                falling back to the HTTP status

The client holds the bearer token of the current session. authenticate()
and guest_session() store it; end_session() drops it.

USAGE
─────
    async with CampusSafetyClient("http://localhost:8000") as api:
        user = await api.authenticate("248CS1021", "s3cret-pass", biometric_id="BIO-1")
        incidents = await api.list_incidents(location=CampusLocation.GATE_A)
"""

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from campus_safety.core.errors import (
    ERRORS_BY_KIND,
    AuthError,
    CampusSafetyError,
    ConflictError,
    NotFoundError,
    OperationTimeout,
    PermissionDeniedError,
    TransientError,
    ValidationError,
)
from campus_safety.models.incident import (
    CampusLocation,
    Incident,
    IncidentCreate,
    IncidentStatus,
    SubmitResponse,
)
from campus_safety.models.user import (
    LoginRequest,
    Portal,
    RegisterRequest,
    RegisterResponse,
    Role,
    Token,
    UserCreate,
    UserOut,
    UserStatus,
)
from campus_safety.services.session_gate import SessionState

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0

_ERRORS_BY_STATUS: dict[int, type[CampusSafetyError]] = {
    401: AuthError,
    403: PermissionDeniedError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
    504: OperationTimeout,
}


def error_from_response(response: httpx.Response) -> CampusSafetyError:
    """Rebuild the server's error from an error response."""
    try:
        body = response.json()
    except ValueError:
        body = {}

    detail = body.get("detail") if isinstance(body, dict) else None
    kind = body.get("error") if isinstance(body, dict) else None

    # FastAPI's own request validation returns a list of field errors
    if isinstance(detail, list):
        detail = "; ".join(str(item.get("msg", item)) for item in detail if isinstance(item, dict)) or "Invalid request"
    message = detail or response.reason_phrase or f"HTTP {response.status_code}"

    if kind in ERRORS_BY_KIND:
        return ERRORS_BY_KIND[kind](message)
    if response.status_code in _ERRORS_BY_STATUS:
        return _ERRORS_BY_STATUS[response.status_code](message)
    if response.status_code == 429 or response.status_code >= 500:
        return TransientError(message, status_code=response.status_code)
    return CampusSafetyError(message, status_code=response.status_code)


class CampusSafetyClient:
    """Thin async wrapper around the Campus Safety REST API."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.token = token
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "CampusSafetyClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── Transport ─────────────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            response = await self._http.request(method, path, json=json, params=params, headers=headers)
        except httpx.TimeoutException as exc:
            logger.error("%s %s timed out: %s", method, path, exc)
            raise OperationTimeout(f"Request timed out: {method} {path}")
        except httpx.TransportError as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise TransientError(f"Network error: {exc}")

        if response.is_error:
            error = error_from_response(response)
            logger.debug("%s %s → %s (%s)", method, path, response.status_code, error.kind)
            raise error

        return response.json() if response.content else None

    @staticmethod
    def _build(model, **fields):
        """Validate input locally so bad values never reach the network."""
        try:
            return model(**fields)
        except PydanticValidationError as exc:
            raise ValidationError(str(exc.errors()[0].get("msg", "Invalid input")))

    # ── Session ───────────────────────────────────────────────────────────────

    async def resolve_current_session(self) -> SessionState:
        """
        Resolve the stored token to absent or present(user).

        An invalid, expired or no-longer-approved token is dropped and the
        session resolves to absent. Network failures propagate.
        """
        if not self.token:
            return SessionState.absent()
        try:
            data = await self._request("GET", "/auth/me")
        except AuthError as exc:
            logger.info("Stored session rejected: %s", exc.message)
            self.token = None
            return SessionState.absent()
        return SessionState.present(UserOut.model_validate(data))

    async def register(self, college_id: str, name: str, password: str, biometric_id: str) -> RegisterResponse:
        payload = self._build(
            RegisterRequest, college_id=college_id, name=name, password=password, biometric_id=biometric_id
        )
        data = await self._request("POST", "/auth/register", json=payload.model_dump(mode="json"))
        return RegisterResponse.model_validate(data)

    async def authenticate(
        self,
        college_id: str,
        password: str,
        biometric_id: Optional[str] = None,
        portal: Optional[Portal] = None,
    ) -> UserOut:
        if not college_id.strip() or not password:
            raise ValidationError("College ID and password are required")
        payload = LoginRequest(college_id=college_id.strip(), password=password, biometric_id=biometric_id, portal=portal)
        data = await self._request("POST", "/auth/login", json=payload.model_dump(mode="json", exclude_none=True))
        token = Token.model_validate(data)
        self.token = token.access_token
        return token.user

    async def guest_session(self) -> UserOut:
        token = Token.model_validate(await self._request("POST", "/auth/guest"))
        self.token = token.access_token
        return token.user

    async def end_session(self) -> None:
        """Drop the token. The server call is best-effort; JWTs are stateless."""
        try:
            await self._request("POST", "/auth/logout")
        except CampusSafetyError as exc:
            logger.warning("Logout call failed, dropping token anyway: %s", exc.message)
        finally:
            self.token = None

    # ── Users ─────────────────────────────────────────────────────────────────

    async def list_users(self, role: Optional[Role] = None, status: Optional[UserStatus] = None) -> list[UserOut]:
        params = {
            "role": role.value if role else None,
            "status": status.value if status else None,
        }
        data = await self._request("GET", "/api/v1/users", params=params)
        return [UserOut.model_validate(u) for u in data]

    async def set_user_status(self, user_id: str, status: UserStatus) -> UserOut:
        if not user_id:
            raise ValidationError("User ID is required")
        data = await self._request("PATCH", f"/api/v1/users/{user_id}/status", json={"status": status.value})
        return UserOut.model_validate(data)

    async def create_user(self, payload: UserCreate) -> UserOut:
        data = await self._request("POST", "/api/v1/users", json=payload.model_dump(mode="json"))
        return UserOut.model_validate(data)

    # ── Incidents ─────────────────────────────────────────────────────────────

    async def list_incidents(
        self,
        location: Optional[CampusLocation] = None,
        status: Optional[IncidentStatus] = None,
    ) -> list[Incident]:
        params = {
            "location": location.value if location else None,
            "status": status.value if status else None,
        }
        data = await self._request("GET", "/api/v1/incidents", params=params)
        return [Incident.model_validate(i) for i in data]

    async def create_incident(self, payload: IncidentCreate) -> SubmitResponse:
        data = await self._request("POST", "/api/v1/incidents", json=payload.model_dump(mode="json"))
        return SubmitResponse.model_validate(data)

    async def update_incident_status(self, incident_id: str, status: IncidentStatus) -> Incident:
        if not incident_id:
            raise ValidationError("Incident ID is required")
        data = await self._request(
            "PATCH", f"/api/v1/incidents/{incident_id}/status", json={"status": status.value}
        )
        return Incident.model_validate(data)

    def stream_url(self) -> str:
        """WebSocket URL of the incident stream, carrying the session token."""
        base = self._http.base_url
        url = base.copy_with(
            scheme="wss" if base.scheme == "https" else "ws",
            path=base.path.rstrip("/") + "/api/v1/incidents/stream",
        )
        if self.token:
            url = url.copy_merge_params({"token": self.token})
        return str(url)
