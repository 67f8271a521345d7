import logging
import mimetypes
import threading
from pathlib import Path
from typing import Any

import requests

from ..config import SiteConfig
from ..content_types import ContentType, get_content_type
from ..exceptions import NotFoundError, TransportError

logger = logging.getLogger(__name__)

PER_PAGE = 100

# WordPress error codes that mean "this item does not exist".
_NOT_FOUND_CODES = frozenset(
    {
        "rest_post_invalid_id",
        "rest_template_not_found",
        "rest_no_route",
    }
)


class WordPressClient:
    def __init__(self, config: SiteConfig):
        self.config = config
        self._thread_local = threading.local()
        self.base_url = config.site_url.rstrip("/")
        # "pretty" (/wp-json/) or "query" (?rest_route=); detected lazily.
        self.rest_path: str | None = None

    @property
    def session(self) -> requests.Session:
        """Accessor for the current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.auth = (self.config.username, self.config.app_password)
        session.verify = not self.config.insecure
        session.headers.update({"Accept": "application/json"})
        return session

    def _build_request(
        self, endpoint: str, params: dict[str, Any] | None
    ) -> tuple[str, dict[str, Any]]:
        """
        Return the URL and query params for a wp/v2 endpoint.
        """
        query = dict(params or {})
        if self.rest_path == "query":
            query = {"rest_route": f"/wp/v2/{endpoint}", **query}
            return self.base_url + "/", query
        return f"{self.base_url}/wp-json/wp/v2/{endpoint}", query

    def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        **request_kwargs: Any,
    ) -> Any:
        """
        Make a REST request and return the decoded JSON body.

        Extra keyword arguments (``files``, ``data``) go to
        ``requests.Session.request`` unchanged.

        Raises:
            NotFoundError: On 404 or a WordPress "invalid id" error code.
            TransportError: On connection failure, timeout, any other
                non-2xx status, or a body that is not JSON.
        """
        if self.rest_path is None:
            self.detect_rest_path()

        url, query = self._build_request(endpoint, params)
        session = self._get_session()
        try:
            response = session.request(
                method,
                url,
                params=query,
                json=json,
                timeout=(10, self.config.timeout),
                **request_kwargs,
            )
        except requests.RequestException as exc:
            raise TransportError(
                f"WordPress API unreachable ({method} {endpoint}): {exc}"
            ) from exc

        if not response.ok:
            self._raise_for_response(response, method, endpoint)

        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(
                f"WordPress API returned invalid JSON for {method} {endpoint}",
                status_code=response.status_code,
            ) from exc

    @staticmethod
    def _raise_for_response(
        response: requests.Response, method: str, endpoint: str
    ) -> None:
        code = None
        try:
            body = response.json()
            if isinstance(body, dict):
                code = body.get("code")
        except ValueError:
            body = None

        message = (
            f"WordPress API error ({response.status_code}) "
            f"for {method} {endpoint}: {response.text[:500]}"
        )
        if response.status_code == 404 or code in _NOT_FOUND_CODES:
            raise NotFoundError(message)
        raise TransportError(message, status_code=response.status_code)

    def detect_rest_path(self) -> str:
        """
        Detect whether the site serves the REST API under /wp-json/ or only
        through the ?rest_route= query parameter (plain permalinks).
        """
        session = self._get_session()
        candidates = (
            ("pretty", f"{self.base_url}/wp-json/wp/v2/", {}),
            ("query", self.base_url + "/", {"rest_route": "/wp/v2/"}),
        )
        for mode, url, params in candidates:
            try:
                response = session.get(
                    url, params=params, timeout=(10, self.config.timeout)
                )
            except requests.RequestException as exc:
                logger.debug("REST root check %s failed: %s", url, exc)
                continue
            if response.ok:
                self.rest_path = mode
                logger.debug("Using %s REST path for %s", mode, self.base_url)
                return mode
        raise TransportError(
            f"Could not detect REST API path for {self.base_url}"
        )

    def _content_type(self, content_type: str) -> ContentType:
        try:
            return get_content_type(content_type)
        except ValueError as exc:
            raise TransportError(str(exc)) from exc

    def list_all(self, content_type: str) -> list[dict[str, Any]]:
        """
        Fetch every item of a content type, following pagination.

        Items are requested with ``context=edit`` and ``status=any`` so
        drafts and raw block markup are included. Media is listed without
        ``status`` since attachments only accept ``inherit``. A 404 on the
        first page means the endpoint is unavailable on this site (e.g. no
        block theme) and yields an empty list.
        """
        ct = self._content_type(content_type)
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            params: dict[str, Any] = {
                "context": "edit",
                "per_page": PER_PAGE,
                "page": page,
            }
            if not ct.media:
                params["status"] = "any"
            try:
                batch = self._request("GET", ct.endpoint, params=params)
            except NotFoundError:
                if page == 1:
                    logger.debug(
                        "Endpoint %s not available on %s",
                        ct.endpoint,
                        self.base_url,
                    )
                    return []
                raise
            if not isinstance(batch, list):
                raise TransportError(
                    f"Unexpected response listing {ct.endpoint}: expected a JSON array"
                )
            items.extend(batch)
            if len(batch) < PER_PAGE:
                break
            page += 1
        return items

    def fetch_one(
        self, content_type: str, remote_id: int | str
    ) -> dict[str, Any]:
        """
        Fetch a single item with ``context=edit``.
        """
        ct = self._content_type(content_type)
        return self._request(
            "GET", f"{ct.endpoint}/{remote_id}", params={"context": "edit"}
        )

    def create(
        self, content_type: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        """
        Create a new item and return the created item JSON (with its id).
        """
        ct = self._content_type(content_type)
        return self._request("POST", ct.endpoint, json=data)

    def update(
        self,
        content_type: str,
        remote_id: int | str,
        data: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Update an existing item.

        Raises:
            NotFoundError: If the item no longer exists remotely.
        """
        ct = self._content_type(content_type)
        return self._request("PUT", f"{ct.endpoint}/{remote_id}", json=data)

    def upload_media(
        self,
        path: Path,
        title: str | None = None,
        alt_text: str | None = None,
        caption: str | None = None,
    ) -> dict[str, Any]:
        """
        Upload a file to the media library as a multipart POST to ``media``.

        The title defaults to the file name without its extension. Returns
        the created attachment JSON.

        Raises:
            OSError: If the file cannot be read.
            TransportError: If WordPress rejects the upload.
        """
        mime_type = mimetypes.guess_type(path.name)[0]
        fields = {"title": title or path.stem}
        if alt_text:
            fields["alt_text"] = alt_text
        if caption:
            fields["caption"] = caption
        with open(path, "rb") as fh:
            return self._request(
                "POST",
                "media",
                files={
                    "file": (
                        path.name,
                        fh,
                        mime_type or "application/octet-stream",
                    )
                },
                data=fields,
            )

    def validate_connection(self) -> str:
        """
        Validate connection and credentials by calling users/me.
        Returns the authenticated user's display name.
        """
        self.detect_rest_path()
        me = self._request("GET", "users/me")
        if isinstance(me, dict):
            return str(me.get("name") or me.get("slug") or "")
        return ""
