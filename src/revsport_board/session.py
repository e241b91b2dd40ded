"""Authenticated HTTP session for the RevSport portal.

SessionManager owns the only cookie jar in the process. It performs the
three-step Laravel login handshake (CSRF fetch, credential POST, verification),
persists the jar to disk so restarts can skip a login, and transparently
re-authenticates once when an authenticated request comes back 401/403.
"""

import json
import re
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

from revsport_board.config import ScraperConfig
from revsport_board.errors import (
    AuthError,
    AuthFailure,
    NetworkError,
    RateLimitError,
    SessionExpired,
    UpstreamHTTPError,
    UpstreamTimeout,
)
from revsport_board.logging import get_logger

logger = get_logger(__name__)

BROWSER_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Connection": "keep-alive",
}

# Candidate substrings for the login form's field names, in priority order
USERNAME_HINTS = ("email", "username", "user")
PASSWORD_HINTS = ("password", "pass", "pwd")

ERROR_SELECTORS = (".alert-danger", ".error", "[class*=error]")


@dataclass(frozen=True)
class LoginForm:
    """What step 1 of the handshake learns from the login page."""

    csrf_token: str
    action: str = "/login"
    username_field: str = "username"
    password_field: str = "password"


def extract_csrf_token(soup: BeautifulSoup) -> str | None:
    """Find the CSRF token: hidden _token input, then csrf-token / X-CSRF-TOKEN meta."""
    token_input = soup.select_one('input[name="_token"]')
    if token_input and token_input.get("value"):
        return token_input["value"]
    for meta_name in ("csrf-token", "X-CSRF-TOKEN"):
        meta = soup.find("meta", attrs={"name": meta_name})
        if meta and meta.get("content"):
            return meta["content"]
    return None


def extract_page_error(soup: BeautifulSoup) -> str:
    """Return the first visible error message on a page, or ""."""
    for selector in ERROR_SELECTORS:
        for element in soup.select(selector):
            text = " ".join(element.get_text(" ").split())
            if text:
                return text
    return ""


def _find_field_name(inputs: list, hints: tuple[str, ...]) -> str | None:
    for hint in hints:
        for field in inputs:
            name = (field.get("name") or "").lower()
            field_id = (field.get("id") or "").lower()
            placeholder = (field.get("placeholder") or "").lower()
            if field.get("name") and (
                hint in name or hint in field_id or hint in placeholder
            ):
                return field["name"]
    return None


def parse_login_form(html: str) -> LoginForm:
    """Parse the login page into a LoginForm.

    Raises:
        AuthError: If no CSRF token can be found (NO_CSRF_TOKEN).
    """
    soup = BeautifulSoup(html, "html.parser")
    token = extract_csrf_token(soup)
    if not token:
        raise AuthError(
            AuthFailure.NO_CSRF_TOKEN, "Could not extract CSRF token from login page"
        )

    form = soup.find("form", attrs={"method": re.compile(r"^post$", re.I)})
    action = (form.get("action") if form else None) or "/login"
    inputs = [
        field
        for field in (form or soup).find_all("input")
        if (field.get("type") or "text").lower() not in ("hidden", "submit", "checkbox")
    ]
    username_field = _find_field_name(inputs, USERNAME_HINTS) or "username"
    password_field = _find_field_name(inputs, PASSWORD_HINTS) or "password"

    return LoginForm(
        csrf_token=token,
        action=action,
        username_field=username_field,
        password_field=password_field,
    )


def _domain_matches(host: str, cookie_domain: str) -> bool:
    domain = cookie_domain.lstrip(".").lower()
    return not domain or host == domain or host.endswith("." + domain)


class SessionManager:
    """Login state machine plus the shared requests.Session.

    States: Anonymous -> Authenticated (after login steps 1-3 succeed).
    Any 401/403 on an authenticated request drops back to Anonymous.
    """

    def __init__(
        self, config: ScraperConfig, http: requests.Session | None = None
    ) -> None:
        """Initialize SessionManager.

        Args:
            config: Service configuration (base URL, credentials, timeouts).
            http: Optional pre-built requests.Session (tests inject one).
        """
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.host = (urlparse(self.base_url).hostname or "").lower()
        self.http = http or requests.Session()
        self.http.headers.update(BROWSER_HEADERS)

        self.csrf_token: str | None = None
        self._authenticated = False
        self._restored = False
        self._lock = threading.RLock()

        self.state_file = (
            Path(config.session_state_file) if config.session_state_file else None
        )
        if self.state_file is not None:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            self._restored = self._restore_session()

        logger.info(
            "session_manager_initialized",
            base_url=self.base_url,
            state_file=str(self.state_file) if self.state_file else None,
            restored=self._restored,
        )

    # -- public API -----------------------------------------------------

    def is_logged_in(self) -> bool:
        return self._authenticated

    def cookie_count(self) -> int:
        """Number of cookies in the jar that apply to the base domain."""
        return sum(1 for c in self.http.cookies if _domain_matches(self.host, c.domain))

    def login(self) -> None:
        """Run the full login handshake, failing fast on any step.

        Raises:
            AuthError: CSRF token missing, credentials rejected, or verification failed.
            TransientError: The portal could not be reached or timed out.
        """
        with self._lock:
            self._authenticated = False
            logger.info("authentication_started", base_url=self.base_url)
            try:
                form = self._fetch_login_form()
                self._submit_credentials(form)
                if self.config.login_settle_delay > 0:
                    time.sleep(self.config.login_settle_delay)
                self._verify()
            except AuthError as e:
                logger.error("authentication_failed", reason=e.reason.value, error=str(e))
                raise

            self._authenticated = True
            self._restored = False
            self.save_session()
            logger.info("authentication_succeeded", cookies=self.cookie_count())

    def ensure_authenticated(self) -> None:
        """Log in unless already authenticated.

        A cookie jar restored from disk is given one chance: if the
        verification page accepts it, no login is needed.
        """
        with self._lock:
            if self._authenticated:
                return
            if self._restored:
                self._restored = False
                try:
                    self._verify()
                except AuthError:
                    logger.info("restored_session_rejected")
                else:
                    self._authenticated = True
                    logger.info("session_restored", cookies=self.cookie_count())
                    return
            self.login()

    def invalidate(self) -> None:
        """Drop back to Anonymous; the next request logs in again."""
        with self._lock:
            if self._authenticated:
                logger.info("session_invalidated")
            self._authenticated = False
            self.csrf_token = None

    def get(self, path: str) -> str:
        """GET an authenticated page and return its HTML.

        Logs in first if needed. On 401/403 (or a bounce to the login page)
        the session is invalidated, login() runs once more and the request is
        retried exactly once.

        Raises:
            SessionExpired: The retry was rejected as well.
            AuthError: Re-authentication failed.
            TransientError: Timeout, network failure or unexpected status.
        """
        retrying = Retrying(
            retry=retry_if_exception_type(SessionExpired),
            stop=stop_after_attempt(2),
            before_sleep=self._log_reauthentication,
            reraise=True,
        )
        return retrying(self._get_once, path)

    def save_session(self) -> None:
        """Write the cookie jar to the state file (if persistence is enabled)."""
        if self.state_file is None:
            return
        cookies = [
            {
                "name": c.name,
                "value": c.value,
                "domain": c.domain,
                "path": c.path,
                "expires": c.expires,
                "secure": c.secure,
            }
            for c in self.http.cookies
        ]
        payload = {"saved_at": datetime.now().isoformat(), "cookies": cookies}
        self.state_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        logger.info("session_saved", path=str(self.state_file), cookies=len(cookies))

    def clear_session(self) -> None:
        """Forget all cookies and delete the saved session state file."""
        with self._lock:
            self.invalidate()
            self.http.cookies.clear()
            self._restored = False
            if self.state_file is not None and self.state_file.exists():
                self.state_file.unlink()
                logger.info("session_cleared", path=str(self.state_file))
            else:
                logger.debug("session_clear_skipped", reason="file_not_found")

    # -- handshake steps ------------------------------------------------

    def _fetch_login_form(self) -> LoginForm:
        """Step 1: GET the login page and read the CSRF token and form fields."""
        response = self._request("GET", self.config.login_path)
        self._raise_for_status(response, self.config.login_path)

        form = parse_login_form(response.text)
        self.csrf_token = form.csrf_token
        logger.debug(
            "csrf_token_extracted",
            token=form.csrf_token[:10] + "...",
            action=form.action,
            username_field=form.username_field,
            password_field=form.password_field,
        )
        return form

    def _submit_credentials(self, form: LoginForm) -> None:
        """Step 2: POST the credentials.

        The portal sometimes answers 4xx/5xx even though the session cookies
        were set and the login worked, so the status is only advisory. No
        cookies for the base domain is the real failure signal.
        """
        data = {
            "_token": form.csrf_token,
            form.username_field: self.config.username,
            form.password_field: self.config.password.get_secret_value(),
            "remember": "on",
        }
        login_url = f"{self.base_url}{self.config.login_path}"
        # form actions may be relative to the login page ("login", "../auth")
        response = self._request(
            "POST",
            urljoin(login_url, form.action),
            data=data,
            headers={
                "Referer": login_url,
                "Origin": self.base_url,
            },
        )
        cookies = self.cookie_count()
        logger.debug("login_response", status=response.status_code, cookies=cookies)

        if cookies == 0:
            soup = BeautifulSoup(response.text or "", "html.parser")
            message = extract_page_error(soup) or (
                f"Login failed with status {response.status_code}"
            )
            raise AuthError(AuthFailure.CREDENTIALS_REJECTED, message)

        if response.status_code >= 400:
            logger.debug(
                "login_error_status_with_cookies",
                status=response.status_code,
                cookies=cookies,
            )

    def _verify(self) -> None:
        """Step 3: a protected page must show a logout link and no login form.

        Both checks are needed: the login page itself is served with 200.
        """
        path = self.config.verify_path
        response = self._request("GET", path)
        if response.status_code in (401, 403):
            raise AuthError(
                AuthFailure.VERIFICATION_FAILED,
                f"Verification page {path} answered {response.status_code}",
            )
        self._raise_for_status(response, path)

        soup = BeautifulSoup(response.text, "html.parser")
        has_logout = bool(
            soup.select_one('a[href*="logout"]') or soup.select_one('form[action*="logout"]')
        )
        has_login_form = bool(
            soup.select_one('form[action*="login"]') or soup.select_one('input[name="password"]')
        )
        logger.debug("auth_check", has_logout=has_logout, has_login_form=has_login_form)

        if not has_logout or has_login_form:
            error = extract_page_error(soup)
            message = "Authentication verification failed"
            if error:
                message = f"{message}: {error}"
            raise AuthError(AuthFailure.VERIFICATION_FAILED, message)

    # -- plumbing -------------------------------------------------------

    def _get_once(self, path: str) -> str:
        self.ensure_authenticated()
        response = self._request("GET", path)
        if response.status_code in (401, 403) or self._landed_on_login(response, path):
            self.invalidate()
            raise SessionExpired(f"GET {path} answered {response.status_code}")
        self._raise_for_status(response, path)
        return response.text

    def _landed_on_login(self, response: requests.Response, path: str) -> bool:
        login_path = self.config.login_path.rstrip("/")
        final_path = urlparse(response.url or "").path.rstrip("/")
        return final_path == login_path and path.rstrip("/") != login_path

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = path if path.startswith(("http://", "https://")) else f"{self.base_url}{path}"
        timeout = self.config.request_timeout
        try:
            return self.http.request(method, url, timeout=timeout, **kwargs)
        except requests.Timeout as e:
            logger.warning("upstream_timeout", method=method, path=path, timeout=timeout)
            raise UpstreamTimeout(f"{method} {path} timed out after {timeout}s") from e
        except requests.RequestException as e:
            logger.warning("upstream_unreachable", method=method, path=path, error=str(e))
            raise NetworkError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _raise_for_status(response: requests.Response, path: str) -> None:
        status = response.status_code
        if status == 429:
            raise RateLimitError(f"GET {path} rate limited", status)
        if status >= 400:
            raise UpstreamHTTPError(f"GET {path} answered {status}", status)

    @staticmethod
    def _log_reauthentication(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning("session_expired_reauthenticating", error=str(error))

    def _restore_session(self) -> bool:
        """Load a saved cookie jar if the state file exists and is fresh."""
        assert self.state_file is not None
        if not self.state_file.exists():
            logger.debug("session_check", result="missing", reason="file_not_found")
            return False

        file_mtime = datetime.fromtimestamp(self.state_file.stat().st_mtime)
        age = datetime.now() - file_mtime
        if age > timedelta(hours=self.config.max_session_age_hours):
            logger.info(
                "session_check",
                result="expired",
                age_hours=age.total_seconds() / 3600,
                max_hours=self.config.max_session_age_hours,
            )
            return False

        try:
            payload = json.loads(self.state_file.read_text(encoding="utf-8"))
            for cookie in payload.get("cookies", []):
                self.http.cookies.set(
                    cookie["name"],
                    cookie["value"],
                    domain=cookie.get("domain", ""),
                    path=cookie.get("path", "/"),
                    expires=cookie.get("expires"),
                    secure=cookie.get("secure", False),
                )
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("session_state_unreadable", path=str(self.state_file), error=str(e))
            self.http.cookies.clear()
            return False

        logger.debug(
            "session_check",
            result="valid",
            age_hours=age.total_seconds() / 3600,
        )
        return self.cookie_count() > 0
