"""Tests for entity handles and the property allowlist."""

import pytest

from jmaptest.adapters.server import Account
from jmaptest.harness.entities import KNOWN_PROPERTIES, Email, Mailbox, is_known_property


@pytest.fixture
def account(tester) -> Account:
    return Account(tester, "u1")


MAILBOX = {"id": "M1", "name": "Inbox", "role": "inbox", "totalEmails": 3, "unreadEmails": 1}


class TestIsKnownProperty:
    def test_listed_property(self):
        assert is_known_property("name", KNOWN_PROPERTIES["Mailbox"])
        assert not is_known_property("color", KNOWN_PROPERTIES["Mailbox"])

    def test_header_forms_only_for_email(self):
        assert is_known_property("header:List-Id:asText", KNOWN_PROPERTIES["Email"])
        assert not is_known_property("header:List-Id", KNOWN_PROPERTIES["Mailbox"])


class TestEntity:
    def test_properties_load_lazily(self, account, transport):
        transport.send_batch.return_value = [
            ["Mailbox/get", {"list": [MAILBOX], "notFound": []}, "a"],
        ]
        mailbox = account.entity("Mailbox", "M1")

        transport.send_batch.assert_not_called()
        assert mailbox.name == "Inbox"
        assert mailbox.role == "inbox"
        assert mailbox.total_emails == 3
        transport.send_batch.assert_called_once_with(
            [["Mailbox/get", {"ids": ["M1"], "accountId": "u1"}, "a"]]
        )

    def test_unknown_property_is_rejected(self, account):
        mailbox = Mailbox(account, "M1", properties=MAILBOX)

        with pytest.raises(AttributeError, match="'colour' is not a known Mailbox property"):
            mailbox.get("colour")

    def test_missing_on_server(self, account, transport):
        transport.send_batch.return_value = [
            ["Mailbox/get", {"list": [], "notFound": ["M1"]}, "a"],
        ]

        with pytest.raises(LookupError, match="Mailbox M1 not found"):
            account.entity("Mailbox", "M1").refresh()

    def test_update_invalidates_cache(self, account, transport):
        mailbox = Mailbox(account, "M1", properties=MAILBOX)
        transport.send_batch.side_effect = [
            [["Mailbox/set", {"updated": {"M1": None}}, "a"]],
            [["Mailbox/get", {"list": [{**MAILBOX, "name": "Renamed"}]}, "a"]],
        ]

        mailbox.update({"name": "Renamed"})

        assert mailbox.name == "Renamed"
        assert transport.send_batch.call_count == 2

    def test_update_rejected(self, account, transport):
        mailbox = Mailbox(account, "M1", properties=MAILBOX)
        transport.send_batch.return_value = [
            ["Mailbox/set", {"notUpdated": {"M1": {"type": "invalidProperties"}}}, "a"],
        ]

        with pytest.raises(RuntimeError, match="Failed to update Mailbox M1: invalidProperties"):
            mailbox.update({"role": "bogus"})
        assert mailbox.name == "Inbox"

    def test_method_error(self, account, transport):
        transport.send_batch.return_value = [["error", {"type": "serverFail"}, "a"]]

        with pytest.raises(RuntimeError, match="serverFail"):
            Mailbox(account, "M1").refresh()

    def test_destroy(self, account, transport):
        email = Email(account, "E1", properties={"id": "E1", "subject": "hi"})
        transport.send_batch.return_value = [
            ["Email/set", {"destroyed": ["E1"]}, "a"],
        ]

        email.destroy()

        assert email.destroyed
        with pytest.raises(RuntimeError, match="was destroyed"):
            email.subject

    def test_destroy_rejected(self, account, transport):
        email = Email(account, "E1")
        transport.send_batch.return_value = [
            ["Email/set", {"destroyed": [], "notDestroyed": {"E1": {"type": "notFound"}}}, "a"],
        ]

        with pytest.raises(RuntimeError, match="Failed to destroy Email E1: notFound"):
            email.destroy()
        assert not email.destroyed
