"""Tests for ContactDB — CRUD operations on the contacts table."""

from stayconnected.data.models import Channel, Contact


class TestContactDBAdd:
    def test_add_contact_returns_contact(self, contact_db):
        contact = contact_db.add_contact("user-1", "Bob", "bob@example.com", "+15550002")
        assert isinstance(contact, Contact)
        assert contact.name == "Bob"
        assert contact.notification_preference == "both"
        assert contact.deleted is False
        assert contact.id

    def test_add_contact_strips_whitespace(self, contact_db):
        contact = contact_db.add_contact("user-1", "  Dan  ", "  dan@example.com  ", "  ")
        assert contact.name == "Dan"
        assert contact.email == "dan@example.com"
        assert contact.phone is None

    def test_social_media_round_trips(self, contact_db):
        added = contact_db.add_contact(
            "user-1", "Eve", "eve@example.com", social_media={"twitter": "@eve"},
        )
        assert contact_db.get_contact(added.id).social_media == {"twitter": "@eve"}


class TestContactDBListAndDelete:
    def test_list_scoped_to_owner(self, contact_db):
        contact_db.add_contact("user-1", "Bob", "bob@example.com")
        contact_db.add_contact("user-2", "Carol", "carol@example.com")
        assert [c.name for c in contact_db.list_all("user-1")] == ["Bob"]

    def test_soft_delete_hides_from_list(self, contact_db):
        c = contact_db.add_contact("user-1", "Bob", "bob@example.com")
        assert contact_db.delete_contact(c.id) is True
        assert contact_db.list_all("user-1") == []
        assert len(contact_db.list_all("user-1", include_deleted=True)) == 1
        assert contact_db.get_contact(c.id).deleted is True

    def test_delete_twice_returns_false(self, contact_db):
        c = contact_db.add_contact("user-1", "Bob", "bob@example.com")
        contact_db.delete_contact(c.id)
        assert contact_db.delete_contact(c.id) is False

    def test_get_contact_not_found(self, contact_db):
        assert contact_db.get_contact("missing") is None


class TestContactChannels:
    def test_both_with_email_and_phone(self):
        c = Contact(id="c", user_id="u", name="Bob", email="b@x.com", phone="+1555")
        assert c.channels() == [(Channel.EMAIL, "b@x.com"), (Channel.SMS, "+1555")]

    def test_missing_recipient_skipped(self):
        c = Contact(id="c", user_id="u", name="Bob", email="b@x.com", phone=None)
        assert c.channels() == [(Channel.EMAIL, "b@x.com")]

    def test_preference_limits_channels(self):
        c = Contact(id="c", user_id="u", name="Bob", email="b@x.com", phone="+1555",
                    notification_preference="sms")
        assert c.channels() == [(Channel.SMS, "+1555")]

    def test_no_eligible_channel(self):
        c = Contact(id="c", user_id="u", name="Bob", email="b@x.com", notification_preference="sms")
        assert c.channels() == []
