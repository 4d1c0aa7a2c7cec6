"""Known-property allowlists and cached entity handles.

Entities are thin sugar over the tester: they remember the last property
bag the server returned, and ``update``/``destroy`` invalidate it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from jmaptest.adapters.server import Account
    from jmaptest.harness.batch import BatchResult

# RFC 8621 object properties; "header:*" admits Email's parsed header forms.
KNOWN_PROPERTIES: dict[str, frozenset[str]] = {
    "Mailbox": frozenset({
        "id", "name", "parentId", "role", "sortOrder",
        "totalEmails", "unreadEmails", "totalThreads", "unreadThreads",
        "myRights", "isSubscribed",
    }),
    "Thread": frozenset({"id", "emailIds"}),
    "Email": frozenset({
        "id", "blobId", "threadId", "mailboxIds", "keywords", "size",
        "receivedAt", "messageId", "inReplyTo", "references", "sender",
        "from", "to", "cc", "bcc", "replyTo", "subject", "sentAt",
        "hasAttachment", "preview", "bodyStructure", "bodyValues",
        "textBody", "htmlBody", "attachments", "headers", "header:*",
    }),
    "Identity": frozenset({
        "id", "name", "email", "replyTo", "bcc",
        "textSignature", "htmlSignature", "mayDelete",
    }),
    "EmailSubmission": frozenset({
        "id", "identityId", "emailId", "threadId", "envelope", "sendAt",
        "undoStatus", "deliveryStatus", "dsnBlobIds", "mdnBlobIds",
    }),
    "VacationResponse": frozenset({
        "id", "isEnabled", "fromDate", "toDate", "subject", "textBody", "htmlBody",
    }),
}


def is_known_property(name: str, allowed: frozenset[str]) -> bool:
    """Return True if ``name`` is in ``allowed`` (header forms included)."""
    return name in allowed or ("header:*" in allowed and str(name).startswith("header:"))


class Entity:
    """A server object handle with a cached property bag.

    Property access goes through ``get`` which only admits names in the
    type's allowlist, so a typo fails loudly instead of reading None.
    """

    kind: ClassVar[str] = ""

    def __init__(
        self, account: Account, entity_id: str, properties: dict[str, Any] | None = None
    ) -> None:
        self._account = account
        self._id = entity_id
        self._properties = dict(properties) if properties is not None else None
        self._destroyed = False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._id}>"

    @property
    def id(self) -> str:
        return self._id

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def properties(self) -> dict[str, Any]:
        """Return the cached property bag, fetching it if invalidated."""
        if self._destroyed:
            raise RuntimeError(f"{self!r} was destroyed")
        if self._properties is None:
            self.refresh()
        return dict(self._properties)

    def get(self, name: str) -> Any:
        allowed = self._account.known_properties.get(self.kind, frozenset())
        if not is_known_property(name, allowed):
            raise AttributeError(f"'{name}' is not a known {self.kind} property")
        return self.properties.get(name)

    def refresh(self) -> None:
        """Reload every property from the server via ``Foo/get``."""
        batch = self._account.request((f"{self.kind}/get", {"ids": [self._id]}))
        data = self._arguments_of(batch, "get")
        found = [obj for obj in data.get("list", []) if obj.get("id") == self._id]
        if not found:
            raise LookupError(f"{self.kind} {self._id} not found on the server")
        self._properties = found[0]

    def update(self, changes: dict[str, Any]) -> BatchResult:
        """Apply a patch via ``Foo/set``; the cache is dropped on success.

        Raises:
            RuntimeError: If the server reports the update failed.
        """
        batch = self._account.request(
            (f"{self.kind}/set", {"update": {self._id: changes}})
        )
        data = self._arguments_of(batch, "update")
        not_updated = data.get("notUpdated") or {}
        if self._id in not_updated or self._id not in (data.get("updated") or {}):
            error = not_updated.get(self._id, {})
            raise RuntimeError(
                f"Failed to update {self.kind} {self._id}: "
                f"{error.get('type', 'unknown')} - {error.get('description', '')}"
            )
        self._properties = None
        return batch

    def destroy(self) -> BatchResult:
        """Destroy via ``Foo/set``; the handle is unusable afterwards.

        Raises:
            RuntimeError: If the server reports the destroy failed.
        """
        batch = self._account.request(
            (f"{self.kind}/set", {"destroy": [self._id]})
        )
        data = self._arguments_of(batch, "destroy")
        if self._id not in (data.get("destroyed") or []):
            error = (data.get("notDestroyed") or {}).get(self._id, {})
            raise RuntimeError(
                f"Failed to destroy {self.kind} {self._id}: "
                f"{error.get('type', 'unknown')} - {error.get('description', '')}"
            )
        self._properties = None
        self._destroyed = True
        return batch

    def _arguments_of(self, batch: BatchResult, action: str) -> dict[str, Any]:
        response = batch.single()
        if response is None or response.is_error:
            detail = response.error_type if response is not None else "no response"
            raise RuntimeError(f"Failed to {action} {self.kind} {self._id}: {detail}")
        return dict(response.arguments)


class Mailbox(Entity):
    kind = "Mailbox"

    @property
    def name(self) -> str:
        return self.get("name")

    @property
    def parent_id(self) -> str | None:
        return self.get("parentId")

    @property
    def role(self) -> str | None:
        return self.get("role")

    @property
    def sort_order(self) -> int:
        return self.get("sortOrder")

    @property
    def total_emails(self) -> int:
        return self.get("totalEmails")

    @property
    def unread_emails(self) -> int:
        return self.get("unreadEmails")

    @property
    def is_subscribed(self) -> bool:
        return self.get("isSubscribed")


class Email(Entity):
    kind = "Email"

    @property
    def subject(self) -> str | None:
        return self.get("subject")

    @property
    def thread_id(self) -> str:
        return self.get("threadId")

    @property
    def mailbox_ids(self) -> dict[str, bool]:
        return self.get("mailboxIds")

    @property
    def keywords(self) -> dict[str, bool]:
        return self.get("keywords")


ENTITY_TYPES: dict[str, type[Entity]] = {
    "Mailbox": Mailbox,
    "Email": Email,
}
