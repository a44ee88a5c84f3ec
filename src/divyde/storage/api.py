"""HTTP API storage backend for Divyde (talks to the hosted Divyde server)."""

import logging
from itertools import groupby
from typing import Any

import httpx

from ..exceptions import ApiError, NotFoundError, StateConflictError, ValidationError
from ..ledger import to_amount
from ..models import Debt, DebtDraft, DebtUpdate, Friend
from .base import LedgerStore

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "divyde_session"


class ApiStore(LedgerStore):
    """Client for the Divyde REST API.

    The server enforces ownership through the session cookie and computes
    paid_at itself; this client only maps the wire format onto the domain
    models and the HTTP status codes onto Divyde exceptions.
    """

    def __init__(
        self,
        base_url: str,
        session_token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the API client."""
        self.base_url = base_url
        cookies = {SESSION_COOKIE_NAME: session_token} if session_token else None
        self.client = httpx.Client(
            base_url=base_url,
            headers={"Content-Type": "application/json"},
            cookies=cookies,
            timeout=timeout,
            transport=transport,
        )

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        """
        Send a request and return the decoded JSON body.

        Raises:
            ValidationError: On 400 responses
            NotFoundError: On 404 responses
            StateConflictError: On 409 responses
            ApiError: On transport failures and any other error status
        """
        try:
            response = self.client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            message = _error_message(e.response)
            logger.error(f"Divyde API error {status} on {method} {url}: {message}")
            if status == 400:
                raise ValidationError(message) from e
            if status == 404:
                raise NotFoundError(_entity_for(method, url), [], message) from e
            if status == 409:
                raise StateConflictError(message) from e
            raise ApiError(f"Divyde API error: {status} {message}", status) from e
        except httpx.HTTPError as e:
            raise ApiError(f"Divyde API request failed: {e}") from e

        data: dict[str, Any] = response.json()
        return data

    # ========================================================================
    # Friend operations
    # ========================================================================

    def list_friends(self) -> list[Friend]:
        """List all friends (the server orders them by name)."""
        data = self._request("GET", "/api/friends")
        return [Friend.model_validate(item) for item in data.get("friends", [])]

    def get_friend(self, friend_id: str) -> Friend | None:
        """Get a friend by ID."""
        try:
            data = self._request("GET", f"/api/friends/{friend_id}")
        except NotFoundError:
            return None
        return Friend.model_validate(data["friend"])

    def create_friend(self, friend: Friend) -> Friend:
        """Create a friend; the server assigns the ID."""
        payload: dict[str, Any] = {"name": friend.name}
        if friend.email:
            payload["email"] = friend.email
        if friend.avatar:
            payload["avatarType"] = "custom"
            payload["avatar"] = friend.avatar
        elif friend.avatar_color:
            payload["avatarColor"] = friend.avatar_color

        data = self._request("POST", "/api/friends", json=payload)
        return Friend.model_validate(data["friend"])

    def delete_friend(self, friend_id: str) -> None:
        """Delete a friend (the server cascades its debts)."""
        self._request("DELETE", f"/api/friends/{friend_id}")

    # ========================================================================
    # Debt operations
    # ========================================================================

    def list_debts(self, friend_id: str | None = None) -> list[Debt]:
        """List debts, newest first."""
        params = {"filter": "all"}
        if friend_id is not None:
            params["friendId"] = friend_id
        data = self._request("GET", "/api/debts", params=params)
        return [_parse_debt(item) for item in data.get("debts", [])]

    def get_debt(self, debt_id: str) -> Debt | None:
        """Get a debt by ID.

        The API has no single-debt read, so this scans the full list.
        """
        for debt in self.list_debts():
            if debt.id == debt_id:
                return debt
        return None

    def create_debts(self, drafts: list[DebtDraft]) -> list[Debt]:
        """
        Create debts through the split endpoint.

        Drafts that share amount, direction, description and date are sent
        as one request naming all of their friends, so a batch produced by
        a single split is created atomically on the server. The request
        amount is ``per_person * N``, which the server divides back to
        exactly ``per_person``.

        The endpoint only returns a count, so the created debts are found by
        comparing the debt list before and after.
        """
        if not drafts:
            return []

        before = {debt.id for debt in self.list_debts()}

        def batch_key(draft: DebtDraft) -> tuple:
            return (
                draft.amount,
                draft.direction.value,
                draft.description or "",
                draft.date,
            )

        for key, group in groupby(sorted(drafts, key=batch_key), key=batch_key):
            batch = list(group)
            amount, direction, description, debt_date = key
            payload: dict[str, Any] = {
                "amount": float(amount * len(batch)),
                "direction": direction,
                "friendIds": [draft.friend_id for draft in batch],
                "date": debt_date.isoformat(),
            }
            if description:
                payload["description"] = description

            data = self._request("POST", "/api/debts", json=payload)
            logger.info(f"Server created {data.get('count', 0)} debts")

        return [debt for debt in self.list_debts() if debt.id not in before]

    def update_debt(self, debt_id: str, patch: DebtUpdate) -> Debt:
        """Send a patch; the server stamps or clears paid_at."""
        current = self.get_debt(debt_id)
        if current is None:
            raise NotFoundError("debt", [debt_id])

        payload: dict[str, Any] = {}
        if patch.is_paid is not None:
            payload["isPaid"] = patch.is_paid
        if patch.amount is not None:
            amount = to_amount(patch.amount)
            # The server ignores non-positive amounts instead of rejecting them
            if amount <= 0:
                raise ValidationError("Amount must be greater than 0")
            payload["amount"] = float(amount)
        if patch.description is not None:
            payload["description"] = patch.description

        data = self._request("PATCH", f"/api/debts/{debt_id}", json=payload)
        # The PATCH response omits friendId
        return _parse_debt({**data["debt"], "friendId": current.friend_id})

    def delete_debt(self, debt_id: str) -> None:
        """Delete a debt."""
        self._request("DELETE", f"/api/debts/{debt_id}")


def _parse_debt(item: dict[str, Any]) -> Debt:
    """Parse a wire debt, normalizing the float amount to cents."""
    debt = Debt.model_validate(item)
    return debt.model_copy(update={"amount": to_amount(debt.amount)})


def _error_message(response: httpx.Response) -> str:
    """Extract the server's error message from a failed response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.reason_phrase


def _entity_for(method: str, url: str) -> str:
    # Creating debts 404s when one of the named friends is unknown
    if url.startswith("/api/friends") or (method == "POST" and url == "/api/debts"):
        return "friend"
    return "debt"
