"""JMAP transport for the harness: session discovery and batch round trips."""

from __future__ import annotations

import httpx
import structlog

from jmaptest.core.errors import MalformedResponse, TransportFailure

DEFAULT_USING = (
    "urn:ietf:params:jmap:core",
    "urn:ietf:params:jmap:mail",
)


class JMAPClient:
    """Thin JMAP client over httpx for the server under test.

    Usage:
        client = JMAPClient(token="...", session_url="https://jmap.example/.well-known/jmap")
        client.connect()  # discovers session (account_id, api_url, capabilities)
        responses = client.send_batch([["Mailbox/get", {"accountId": ...}, "a"]])

    The client does not retry: every failed round trip surfaces as a
    TransportFailure so the harness can report it as a failed request.
    """

    def __init__(
        self,
        token: str,
        session_url: str,
        using: list[str] | tuple[str, ...] = DEFAULT_USING,
        http: httpx.Client | None = None,
    ) -> None:
        self._token = token
        self._session_url = session_url
        self._using = list(using)
        # A caller-supplied client stays open; close() only closes our own
        self._owns_http = http is None
        self._http = http or httpx.Client(
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {token}",
            },
        )
        self._api_url: str | None = None
        self._account_id: str | None = None
        self._capabilities: dict = {}
        self._log = structlog.get_logger(component="transport")
        self.last_request: dict | None = None
        self.last_response: dict | None = None

    @property
    def account_id(self) -> str:
        """Return the primary mail account ID. Raises if not connected."""
        if self._account_id is None:
            raise RuntimeError("JMAPClient is not connected. Call connect() first.")
        return self._account_id

    @property
    def capabilities(self) -> dict:
        """Return the server capabilities advertised by the session."""
        return dict(self._capabilities)

    @property
    def using(self) -> list[str]:
        return list(self._using)

    def connect(self) -> None:
        """Discover the JMAP session: primary mail account and API URL.

        Raises:
            TransportFailure: On network failure or an HTTP error status.
            MalformedResponse: If the session object lacks required fields.
        """
        data = self._decode(self._round_trip("GET", self._session_url))
        try:
            self._account_id = data["primaryAccounts"]["urn:ietf:params:jmap:mail"]
            self._api_url = data["apiUrl"]
        except (KeyError, TypeError) as exc:
            raise MalformedResponse(f"JMAP session object is missing {exc}") from exc
        self._capabilities = data.get("capabilities", {})
        self._log.info(
            "session_discovered",
            account_id=self._account_id,
            api_url=self._api_url,
        )

    def send_batch(self, method_calls: list) -> list:
        """Execute JMAP method calls against the API endpoint.

        Args:
            method_calls: List of [method_name, args, call_id] triples.

        Returns:
            The decoded ``methodResponses`` list, untouched.

        Raises:
            RuntimeError: If connect() has not been called.
            TransportFailure: On network failure or an HTTP error status.
            MalformedResponse: If the body is not JSON or has no
                ``methodResponses`` list.
        """
        if self._api_url is None:
            raise RuntimeError("JMAPClient is not connected. Call connect() first.")

        payload = {"using": self._using, "methodCalls": method_calls}
        self.last_request = payload
        self.last_response = None
        self._log.debug("batch_sent", calls=len(method_calls), request=payload)

        data = self._decode(self._round_trip("POST", self._api_url, json=payload))
        self.last_response = data
        responses = data.get("methodResponses") if isinstance(data, dict) else None
        if not isinstance(responses, list):
            raise MalformedResponse("JMAP response has no methodResponses list")

        self._log.debug("batch_received", responses=len(responses), response=data)
        return responses

    def close(self) -> None:
        """Release the HTTP connection pool. The client cannot be reused."""
        if self._owns_http:
            self._http.close()
        self._api_url = None

    def _round_trip(self, method: str, url: str, **kwargs: object) -> httpx.Response:
        """Perform one HTTP exchange, mapping httpx errors to TransportFailure."""
        try:
            resp = self._http.request(method, url, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._log.warning(
                "http_error_status",
                url=url,
                status_code=exc.response.status_code,
            )
            raise TransportFailure(
                f"{method} {url} returned HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            self._log.warning("http_request_failed", url=url, error=str(exc))
            raise TransportFailure(f"{method} {url} failed: {exc}") from exc
        return resp

    @staticmethod
    def _decode(resp: httpx.Response) -> dict:
        try:
            data = resp.json()
        except ValueError as exc:
            # JSONDecodeError and UnicodeDecodeError both land here
            raise MalformedResponse(f"Response body is not JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise MalformedResponse(
                f"Expected a JSON object, got {type(data).__name__}"
            )
        return data
