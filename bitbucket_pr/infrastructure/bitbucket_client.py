from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from bitbucket_pr.config import RetryPolicy, Settings
from bitbucket_pr.domain.entities import Credentials, User
from bitbucket_pr.domain.exceptions import (
    InvalidCredentialsError,
    MappingError,
    NetworkError,
    ProviderAuthError,
    ProviderError,
    ValidationError,
)
from bitbucket_pr.infrastructure.endpoints import ApiVariant, Endpoints, Route, endpoints_for
from bitbucket_pr.infrastructure.mapper import Mapper, mapper_for

log = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
IDEMPOTENT_METHODS = {"GET", "DELETE"}
# Nothing reached the server, so even a POST is safe to send again.
UNSENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)


def _error_message(response: httpx.Response) -> str:
    """Pull the human-readable message out of a cloud or enterprise error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            return errors[0].get("message") or response.reason_phrase
    return response.reason_phrase


class BitbucketClient:
    """
    Authenticated handle to one Bitbucket instance.

    The httpx.AsyncClient is injected and shared; this class only adds the
    base URL, authentication, retry with backoff and the translation of HTTP
    failures into the domain error taxonomy. The variant (and therefore the
    endpoints and the mapper) is fixed at construction.
    """

    def __init__(
        self,
        endpoints: Endpoints,
        auth: httpx.Auth,
        client: httpx.AsyncClient,
        retry: RetryPolicy | None = None,
        timeout: float = 30.0,
        page_size: int = 50,
    ) -> None:
        self.endpoints = endpoints
        self.mapper: Mapper = mapper_for(endpoints.variant)
        self.username: str | None = None
        self.page_size = page_size
        self._auth = auth
        self._client = client
        self._retry = retry or RetryPolicy()
        self._timeout = timeout

    @property
    def variant(self) -> ApiVariant:
        return self.endpoints.variant

    @property
    def api_url(self) -> str:
        return self.endpoints.api_url

    @property
    def api_host(self) -> str:
        return httpx.URL(self.api_url).host

    async def _request(self, method: str, route: Route, *, params: dict | None = None, json: Any = None) -> httpx.Response:
        url = self.api_url + route.path
        query = {**route.params, **(params or {})}
        attempts = self._retry.max_attempts

        for attempt in range(attempts):
            try:
                response = await self._client.request(
                    method,
                    url,
                    params=query or None,
                    json=json,
                    auth=self._auth,
                    timeout=self._timeout,
                    follow_redirects=True,
                )
            except httpx.TransportError as exc:
                retryable = method in IDEMPOTENT_METHODS or isinstance(exc, UNSENT_ERRORS)
                if not retryable or attempt + 1 >= attempts:
                    raise NetworkError(f"{method} {route.path} failed: {exc}") from exc
                wait = self._retry.delay(attempt)
                log.warning("Transport error attempt %d/%d: %s — retrying in %.1fs", attempt + 1, attempts, exc, wait)
                await asyncio.sleep(wait)
                continue

            if response.status_code in RETRYABLE_STATUS and method in IDEMPOTENT_METHODS:
                if attempt + 1 >= attempts:
                    raise NetworkError(
                        f"{method} {route.path} returned {response.status_code} after {attempts} attempts"
                    )
                wait = self._retry.delay(attempt)
                log.warning("HTTP %d attempt %d/%d — retrying in %.1fs", response.status_code, attempt + 1, attempts, wait)
                await asyncio.sleep(wait)
                continue

            self._raise_for_status(method, route, response)
            return response

        raise NetworkError(f"Exhausted {attempts} attempts for {method} {route.path}")

    @staticmethod
    def _raise_for_status(method: str, route: Route, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        message = _error_message(response)
        log.debug("%s %s -> %d: %s", method, route.path, status, message)
        if status in (401, 403):
            raise ProviderAuthError(message)
        if status in (400, 409, 422):
            raise ValidationError(message)
        raise ProviderError(f"{method} {route.path} failed ({status}): {message}", status_code=status)

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise MappingError(f"Response is not JSON: {exc}") from exc

    async def get_json(self, route: Route, params: dict | None = None) -> Any:
        return self._json(await self._request("GET", route, params=params))

    async def get_text(self, route: Route) -> str:
        return (await self._request("GET", route)).text

    async def post_json(self, route: Route, body: Any = None) -> Any:
        return self._json(await self._request("POST", route, json=body))

    async def delete(self, route: Route) -> None:
        await self._request("DELETE", route)

    async def get_page(self, route: Route, page: int, limit: int) -> dict:
        """Fetch one numbered page; the caller maps it with mapper.to_page."""
        return await self.get_json(route, self.endpoints.page_params(page, limit))

    async def get_all_values(self, route: Route) -> list[dict]:
        """Walk every page of a listing and return the raw values in order."""
        values: list[dict] = []
        page = 1
        while True:
            raw = await self.get_page(route, page, self.page_size)
            result = self.mapper.to_page(raw, lambda v: v, page, self.page_size)
            values.extend(result.items)
            if not result.has_next or not result.items:
                break
            page += 1
        log.debug("Fetched %d values from %s over %d page(s)", len(values), route.path, page)
        return values

    async def current_user(self, login: str) -> User:
        raw = await self.get_json(self.endpoints.current_user(login))
        return self.mapper.to_user(raw)


async def create_bitbucket_client(credentials: Credentials, http: httpx.AsyncClient, settings: Settings | None = None) -> BitbucketClient:
    """
    The single client factory: picks the cloud or enterprise variant from the
    credentials, then proves the credentials with a current-user request.

    Raises ProviderAuthError when the provider rejects them.
    """
    settings = settings or Settings()
    variant = ApiVariant.ENTERPRISE if credentials.is_enterprise else ApiVariant.CLOUD
    try:
        endpoints = endpoints_for(variant, credentials.host, settings.cloud_api_url)
    except ValueError as exc:
        raise InvalidCredentialsError(str(exc)) from exc

    # App passwords and HTTP access tokens are both sent as Basic auth. The
    # secret lives only in this auth object and goes away with the client on logout.
    client = BitbucketClient(
        endpoints = endpoints,
        auth      = httpx.BasicAuth(credentials.login, credentials.password),
        client    = http,
        retry     = settings.retry,
        timeout   = settings.timeout,
        page_size = settings.page_size,
    )
    user = await client.current_user(credentials.login)
    client.username = user.username or credentials.login
    log.info("Authenticated against %s (%s) as %s", client.api_url, variant.value, client.username)
    return client
