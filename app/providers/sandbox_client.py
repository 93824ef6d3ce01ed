import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

import httpx
from redis.exceptions import RedisError

from app.core.errors import ExternalServiceError
from app.observability.logging import log
from app.observability import metrics
from app.settings import settings

API_VERSION = "1.0"

ENTITY_AADHAAR_OTP = "in.co.sandbox.kyc.aadhaar.okyc.otp.request"
ENTITY_AADHAAR_VERIFY = "in.co.sandbox.kyc.aadhaar.okyc.request"
ENTITY_PAN_VERIFY = "in.co.sandbox.kyc.pan_verification.request"
ENTITY_MCA_SEARCH = "in.co.sandbox.kyc.mca.master_data.request"

# Retried once with a fresh token; the provider reports stale tokens this way
STALE_TOKEN_MARKER = "insufficient privilege"


class TokenCache:
    """
    Access token shared by all request threads.
    At most one refresh runs at a time; concurrent callers wait for it and
    reuse its result instead of authenticating again.
    """

    def __init__(self, refresh_margin_sec: int = 300):
        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self._expires_at: float = 0.0
        self._margin = refresh_margin_sec

    def _fresh(self) -> bool:
        return bool(self._token) and time.time() < (self._expires_at - self._margin)

    def get(self, fetch: Callable[[], Tuple[str, int]]) -> str:
        if self._fresh():
            return self._token  # type: ignore[return-value]
        with self._lock:
            if not self._fresh():
                token, ttl = fetch()
                self._token = token
                self._expires_at = time.time() + ttl
            return self._token  # type: ignore[return-value]

    def invalidate(self, stale: Optional[str]) -> None:
        with self._lock:
            # Another thread may already have replaced it
            if self._token == stale:
                self._token = None
                self._expires_at = 0.0

    def clear(self) -> None:
        with self._lock:
            self._token = None
            self._expires_at = 0.0

    def status(self) -> Dict[str, Any]:
        return {
            "hasToken": bool(self._token),
            "expiresAt": int(self._expires_at) if self._token else None,
            "isExpired": not self._fresh(),
        }


class SandboxClient:
    """KYC / bank / MCA verification provider."""

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None,
                 api_secret: Optional[str] = None, timeout: Optional[float] = None,
                 http: Optional[httpx.Client] = None):
        self.base_url = (base_url or settings.SANDBOX_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.SANDBOX_API_KEY
        self.api_secret = api_secret if api_secret is not None else settings.SANDBOX_API_SECRET
        self._http = http or httpx.Client(
            base_url=self.base_url,
            timeout=float(timeout or settings.SANDBOX_TIMEOUT_SEC),
        )
        self.tokens = TokenCache(refresh_margin_sec=int(settings.SANDBOX_TOKEN_REFRESH_MARGIN_SEC))

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------
    def _authenticate(self) -> Tuple[str, int]:
        log(event="provider_authenticate")
        resp = self._send("POST", "/authenticate", headers={
            "x-api-key": self.api_key,
            "x-api-secret": self.api_secret,
            "x-api-version": API_VERSION,
        })
        if not (200 <= resp.status_code < 300):
            raise ExternalServiceError(
                f"Provider authentication failed: {resp.status_code}",
                {"statusCode": resp.status_code},
                retryable=resp.status_code >= 500,
            )
        token = (_json(resp) or {}).get("access_token")
        if not token:
            raise ExternalServiceError("Provider authentication returned no access token")
        return token, int(settings.SANDBOX_TOKEN_TTL_SEC)

    def _headers(self, token: str) -> Dict[str, str]:
        return {
            "Authorization": token,
            "x-api-key": self.api_key,
            "x-api-version": API_VERSION,
            "Content-Type": "application/json",
        }

    def token_status(self) -> Dict[str, Any]:
        return self.tokens.status()

    def force_refresh(self) -> None:
        self.tokens.clear()
        self.tokens.get(self._authenticate)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    def _send(self, method: str, endpoint: str, *, json: Optional[dict] = None,
              params: Optional[dict] = None, headers: Optional[dict] = None) -> httpx.Response:
        start = time.time()
        ok = False
        try:
            resp = self._http.request(method, endpoint, json=json, params=params, headers=headers)
            ok = resp.status_code < 500
            return resp
        except httpx.TimeoutException as e:
            log(event="provider_timeout", endpoint=_path(endpoint), error=str(e)[:200])
            raise ExternalServiceError(
                "Verification provider timed out. Please try again.",
                {"endpoint": _path(endpoint)}, retryable=True,
            ) from e
        except httpx.HTTPError as e:
            log(event="provider_transport_error", endpoint=_path(endpoint), errorType=type(e).__name__, error=str(e)[:200])
            raise ExternalServiceError(
                "Verification provider is unreachable. Please try again.",
                {"endpoint": _path(endpoint)}, retryable=True,
            ) from e
        finally:
            elapsed_ms = int((time.time() - start) * 1000)
            try:
                metrics.record_provider_call(_path(endpoint), elapsed_ms, ok)
            except RedisError as e:
                log(event="metrics_write_failed", error=str(e)[:200])

    def request(self, method: str, endpoint: str, *, json: Optional[dict] = None,
                params: Optional[dict] = None) -> Dict[str, Any]:
        token = self.tokens.get(self._authenticate)
        resp = self._send(method, endpoint, json=json, params=params, headers=self._headers(token))

        if resp.status_code == 403 and STALE_TOKEN_MARKER in _message(resp).lower():
            log(event="provider_token_stale", endpoint=_path(endpoint))
            self.tokens.invalidate(token)
            token = self.tokens.get(self._authenticate)
            resp = self._send(method, endpoint, json=json, params=params, headers=self._headers(token))

        return self._handle(resp, endpoint)

    def _handle(self, resp: httpx.Response, endpoint: str) -> Dict[str, Any]:
        status = resp.status_code
        body = _json(resp)
        if 200 <= status < 300:
            return body or {}
        log(event="provider_error", endpoint=_path(endpoint), statusCode=status, message=_message(resp)[:300])
        if status >= 500 or status == 429:
            raise ExternalServiceError(
                "Verification provider is temporarily unavailable. Please try again.",
                {"endpoint": _path(endpoint), "statusCode": status}, retryable=True,
            )
        if status in (401, 403) or body is None:
            raise ExternalServiceError(
                _message(resp) or f"Verification provider rejected the request ({status})",
                {"endpoint": _path(endpoint), "statusCode": status},
            )
        # Business rejections (bad OTP, invalid PAN...) carry a JSON body the normalizers understand
        body.setdefault("code", status)
        return body

    # ------------------------------------------------------------------
    # Aadhaar OKYC
    # ------------------------------------------------------------------
    def generate_aadhaar_otp(self, aadhaar_number: str, consent: str = "Y",
                             reason: str = "KYC Verification") -> Dict[str, Any]:
        log(event="provider_aadhaar_otp", aadhaar=aadhaar_number)
        return self.request("POST", "/kyc/aadhaar/okyc/otp", json={
            "@entity": ENTITY_AADHAAR_OTP,
            "aadhaar_number": aadhaar_number,
            "consent": consent,
            "reason": reason,
        })

    def verify_aadhaar_otp(self, reference_id: str, otp: str) -> Dict[str, Any]:
        log(event="provider_aadhaar_verify", referenceId=str(reference_id))
        return self.request("POST", "/kyc/aadhaar/okyc/otp/verify", json={
            "@entity": ENTITY_AADHAAR_VERIFY,
            "reference_id": str(reference_id),
            "otp": otp,
        })

    # ------------------------------------------------------------------
    # PAN
    # ------------------------------------------------------------------
    def verify_pan(self, pan: str, name_as_per_pan: str, date_of_birth: str,
                   consent: str = "Y", reason: str = "KYC Verification") -> Dict[str, Any]:
        log(event="provider_pan_verify", pan=pan)
        return self.request("POST", "/kyc/pan/verify", json={
            "@entity": ENTITY_PAN_VERIFY,
            "pan": pan,
            "name_as_per_pan": name_as_per_pan,
            "date_of_birth": date_of_birth,
            "consent": consent,
            "reason": reason,
        })

    # ------------------------------------------------------------------
    # Bank
    # ------------------------------------------------------------------
    def verify_ifsc(self, ifsc: str) -> Dict[str, Any]:
        return self.request("GET", f"/bank/{ifsc}")

    def verify_bank_account_penniless(self, ifsc: str, account_number: str,
                                      name: Optional[str] = None, mobile: Optional[str] = None) -> Dict[str, Any]:
        log(event="provider_bank_verify", ifsc=ifsc, accountNumber=account_number)
        params = {k: v for k, v in (("name", name), ("mobile", mobile)) if v}
        return self.request(
            "GET", f"/bank/{ifsc}/accounts/{account_number}/penniless-verify",
            params=params or None,
        )

    # ------------------------------------------------------------------
    # MCA
    # ------------------------------------------------------------------
    def verify_company_master_data(self, cin_or_llpin: str, consent: str = "y",
                                   reason: str = "Company verification for DSA onboarding") -> Dict[str, Any]:
        log(event="provider_company_verify", id=cin_or_llpin)
        return self.request("POST", "/mca/company/master-data/search", json={
            "@entity": ENTITY_MCA_SEARCH,
            "id": cin_or_llpin,
            "consent": consent,
            "reason": reason,
        })


def _json(resp: httpx.Response) -> Optional[Dict[str, Any]]:
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _message(resp: httpx.Response) -> str:
    body = _json(resp) or {}
    msg = body.get("message")
    if not msg and isinstance(body.get("data"), dict):
        msg = body["data"].get("message")
    return str(msg or "")


def _path(endpoint: str) -> str:
    # Account numbers appear in bank paths; keep only the route shape
    parts = endpoint.split("/")
    if len(parts) > 4 and parts[1] == "bank" and parts[3] == "accounts":
        parts[4] = "{account}"
    return "/".join(parts)


_client: Optional[SandboxClient] = None
_client_lock = threading.Lock()


def get_sandbox_client() -> SandboxClient:
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = SandboxClient()
    return _client
