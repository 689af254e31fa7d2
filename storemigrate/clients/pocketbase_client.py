"""PocketBase REST client."""

import base64
import json
import time
import logging
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Dict, List, Optional, Type
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import BaseStoreClient
from ..errors import AuthenticationError, DownloadError, StoreError, UploadError
from ..models.migration import DEFAULT_AUTH_PATH, StoreEndpoint
from ..models.record import Record

logger = logging.getLogger(__name__)


class PocketBaseClient(BaseStoreClient):
    """
    Client for the PocketBase REST API.

    Authenticates as a superuser with email and password, pages
    through collection listings and moves files through the
    protected-file endpoints.
    """

    # PocketBase caps perPage server-side
    MAX_PER_PAGE = 500
    # Re-authenticate this many seconds before the token expires
    TOKEN_LEEWAY_SECONDS = 60

    def __init__(
        self,
        name: str,
        base_url: str,
        email: str,
        password: str,
        auth_path: str = DEFAULT_AUTH_PATH,
        timeout: float = 30.0,
        sort: str = "created",
        retry_config: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize the PocketBase client.

        Args:
            name: Role of this store in the migration ("source", "destination")
            base_url: Base URL of the PocketBase instance
            email: Superuser email
            password: Superuser password
            auth_path: Password auth endpoint (legacy instances use
                /api/admins/auth-with-password)
            timeout: Default request timeout in seconds
            sort: Sort expression applied when listing records
            retry_config: max_retries / backoff_factor for idempotent requests
        """
        super().__init__(name)
        self.base_url = base_url.rstrip("/")
        self.email = email
        self.password = password
        self.auth_path = auth_path
        self.timeout = timeout
        self.sort = sort
        self.retry_config = retry_config or {"max_retries": 3, "backoff_factor": 1.0}
        self._token: Optional[str] = None
        self._session = self._create_session()

    @classmethod
    def from_endpoint(cls, name: str, endpoint: StoreEndpoint) -> "PocketBaseClient":
        """Create a client from endpoint settings."""
        return cls(
            name=name,
            base_url=endpoint.url,
            email=endpoint.email,
            password=endpoint.password,
            auth_path=endpoint.auth_path,
            timeout=endpoint.timeout,
            retry_config=endpoint.retry_config,
        )

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry handling."""
        session = requests.Session()

        retries = Retry(
            total=self.retry_config.get("max_retries", 3),
            backoff_factor=self.retry_config.get("backoff_factor", 1.0),
            status_forcelist=[429, 500, 502, 503, 504],
        )

        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        return session

    def _request(
        self,
        method: str,
        path: str,
        error_cls: Type[StoreError] = StoreError,
        authenticated: bool = True,
        **kwargs
    ) -> requests.Response:
        """Send a request and raise error_cls for anything but a 2xx answer."""
        url = f"{self.base_url}{path}"
        headers = kwargs.pop("headers", {})
        if authenticated and self._token:
            headers["Authorization"] = self._token
        kwargs.setdefault("timeout", self.timeout)

        try:
            response = self._session.request(method, url, headers=headers, **kwargs)
        except requests.exceptions.Timeout:
            raise error_cls(
                f"{method} {path} timed out after {kwargs['timeout']}s",
                context={"store": self.name},
            )
        except requests.exceptions.RequestException as e:
            raise error_cls(f"{method} {path} failed: {e}", context={"store": self.name})

        if not response.ok:
            raise error_cls(
                f"{method} {path} returned {response.status_code}: {self._error_message(response)}",
                status_code=response.status_code,
                context={"store": self.name},
            )

        return response

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        """Extract the error message from a PocketBase error payload."""
        try:
            payload = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(payload, dict):
            message = payload.get("message") or ""
            details = payload.get("data")
            if details:
                message = f"{message} {json.dumps(details)}".strip()
            return message or str(payload)
        return str(payload)

    def _json(
        self,
        response: requests.Response,
        error_cls: Type[StoreError] = StoreError
    ) -> Dict[str, Any]:
        """Decode a JSON object body, raising error_cls for anything else."""
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            raise error_cls(
                f"{self.name} store returned a non-JSON reply: {response.text[:200]!r}",
                status_code=response.status_code,
                context={"store": self.name},
            )
        return payload

    @staticmethod
    def _token_expiry(token: str) -> Optional[float]:
        """Read the exp claim of a JWT without verifying it."""
        try:
            payload = token.split(".")[1]
            payload += "=" * (-len(payload) % 4)
            claims = json.loads(base64.urlsafe_b64decode(payload.encode()))
            return float(claims["exp"])
        except (IndexError, KeyError, TypeError, ValueError):
            return None

    def _record_path(self, collection: str, record_id: Optional[str] = None) -> str:
        path = f"/api/collections/{quote(collection, safe='')}/records"
        if record_id is not None:
            path = f"{path}/{quote(record_id, safe='')}"
        return path

    def _file_path(self, collection: str, record_id: str, filename: str) -> str:
        return (
            f"/api/files/{quote(collection, safe='')}/"
            f"{quote(record_id, safe='')}/{quote(filename, safe='')}"
        )

    def authenticate(self) -> None:
        """Authenticate as a superuser."""
        response = self._request(
            "POST",
            self.auth_path,
            error_cls=AuthenticationError,
            authenticated=False,
            json={"identity": self.email, "password": self.password},
        )

        token = self._json(response, AuthenticationError).get("token")
        if not token:
            raise AuthenticationError(
                f"{self.name} store returned no auth token",
                context={"store": self.name},
            )

        self._token = token
        logger.info(f"Authenticated against {self.name} store {self.base_url}")

    def is_session_valid(self) -> bool:
        """Check the token expiry claim."""
        if not self._token:
            return False
        expiry = self._token_expiry(self._token)
        if expiry is None:
            return False
        return expiry - self.TOKEN_LEEWAY_SECONDS > time.time()

    def list_records(self, collection: str, batch_size: int = 100) -> List[Record]:
        """Fetch every record of a collection page by page."""
        self.ensure_authenticated()
        per_page = max(1, min(batch_size, self.MAX_PER_PAGE))
        records: List[Record] = []
        page = 1

        while True:
            params: Dict[str, Any] = {"page": page, "perPage": per_page}
            if self.sort:
                params["sort"] = self.sort

            response = self._request("GET", self._record_path(collection), params=params)
            payload = self._json(response)
            items = payload.get("items") or []
            records.extend(Record.from_api(collection, item) for item in items)

            total_pages = payload.get("totalPages") or page
            if not items or page >= total_pages:
                break
            page += 1

        logger.debug(f"Listed {len(records)} records from {self.name} {collection}")
        return records

    def create_record(self, collection: str, data: Dict[str, Any]) -> Record:
        """Create a record from a JSON body."""
        self.ensure_authenticated()
        response = self._request("POST", self._record_path(collection), json=data)
        return Record.from_api(collection, self._json(response))

    def update_record(self, collection: str, record_id: str, data: Dict[str, Any]) -> Record:
        """Patch a record with a JSON body."""
        self.ensure_authenticated()
        response = self._request("PATCH", self._record_path(collection, record_id), json=data)
        return Record.from_api(collection, self._json(response))

    def delete_record(self, collection: str, record_id: str) -> None:
        """Delete a record."""
        self.ensure_authenticated()
        self._request("DELETE", self._record_path(collection, record_id))

    def file_url(self, collection: str, record_id: str, filename: str) -> str:
        """URL of a stored file."""
        return f"{self.base_url}{self._file_path(collection, record_id, filename)}"

    def _file_token(self) -> str:
        """Get a short-lived token for protected file access."""
        response = self._request("POST", "/api/files/token", error_cls=DownloadError)
        token = self._json(response, DownloadError).get("token")
        if not token:
            raise DownloadError(f"{self.name} store returned no file token")
        return token

    def retrieve_attachment(
        self,
        collection: str,
        record_id: str,
        filename: str,
        timeout: Optional[float] = None
    ) -> bytes:
        """Download a file through the protected file endpoint."""
        self.ensure_authenticated()
        response = self._request(
            "GET",
            self._file_path(collection, record_id, filename),
            error_cls=DownloadError,
            params={"token": self._file_token()},
            timeout=timeout or self.timeout,
        )
        return response.content

    def store_attachments(
        self,
        collection: str,
        record_id: str,
        field_name: str,
        paths: List[Path],
    ) -> Record:
        """Upload staged files as a multipart PATCH, one part per file."""
        self.ensure_authenticated()
        with ExitStack() as stack:
            files = [
                (field_name, (Path(path).name, stack.enter_context(open(path, "rb"))))
                for path in paths
            ]
            response = self._request(
                "PATCH",
                self._record_path(collection, record_id),
                error_cls=UploadError,
                files=files,
            )
        return Record.from_api(collection, self._json(response, UploadError))

    def validate_connection(self) -> bool:
        """Check that the instance answers its health endpoint."""
        try:
            self._request("GET", "/api/health", authenticated=False)
            return True
        except StoreError as e:
            logger.error(f"Connection check for {self.name} store failed: {e}")
            return False
