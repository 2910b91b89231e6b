import uuid
from unittest.mock import Mock

import pytest

from notifier.db.models import NotificationTarget, User
from notifier.services.notifications.recipient_resolver import (
    NO_ACTIVE_USERS,
    NO_VALID_USER_IDS,
    RecipientResolutionError,
    RecipientResolver,
)
from notifier.services.onesignal.onesignal_client import Broadcast, ExternalIds, PlayerIds


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_all_target_never_queries_users(self, make_notification):
        notification = make_notification(target=NotificationTarget.ALL)
        db = Mock()

        recipients = await RecipientResolver(db).resolve(notification)

        assert recipients == Broadcast()
        db.execute.assert_not_called()


class TestTargetedUsers:
    """Only parseable ids of existing, active users survive, in the given order"""

    @pytest.mark.asyncio
    async def test_drops_malformed_and_inactive(self, db_session, make_user, make_notification):
        active = make_user()
        inactive = make_user(is_active=False)
        notification = make_notification(
            target=NotificationTarget.USERS,
            recipient_ids=[active.id, inactive.id, "badid"],
        )

        recipients = await RecipientResolver(db_session).resolve(notification)

        assert recipients == ExternalIds([active.id])

    @pytest.mark.asyncio
    async def test_users_are_addressed_by_external_id_only(
        self, db_session, make_user, make_notification
    ):
        user = make_user()
        notification = make_notification(
            target=NotificationTarget.USERS, recipient_ids=[user.id]
        )

        recipients = await RecipientResolver(db_session).resolve(notification)

        assert not isinstance(recipients, PlayerIds)
        assert recipients == ExternalIds([user.id])
        assert "onesignal_player_id" not in User.__table__.columns

    @pytest.mark.asyncio
    async def test_keeps_order_and_deduplicates(self, db_session, make_user, make_notification):
        first, second = make_user(), make_user()
        notification = make_notification(
            target=NotificationTarget.USERS,
            recipient_ids=[second.id, {"id": first.id}, second.id.upper()],
        )

        recipients = await RecipientResolver(db_session).resolve(notification)

        assert recipients.ids == (second.id, first.id)

    @pytest.mark.asyncio
    async def test_unknown_users_are_dropped(self, db_session, make_user, make_notification):
        active = make_user()
        notification = make_notification(
            target=NotificationTarget.USERS,
            recipient_ids=[str(uuid.uuid4()), active.id],
        )

        recipients = await RecipientResolver(db_session).resolve(notification)

        assert recipients.ids == (active.id,)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("recipient_ids", [[], ["badid", "u1", None]])
    async def test_no_valid_ids(self, db_session, make_notification, recipient_ids):
        notification = make_notification(
            target=NotificationTarget.USERS, recipient_ids=recipient_ids
        )

        with pytest.raises(RecipientResolutionError) as exc_info:
            await RecipientResolver(db_session).resolve(notification)

        assert exc_info.value.message == NO_VALID_USER_IDS
        assert exc_info.value.error_code == "NO_VALID_USER_IDS"

    @pytest.mark.asyncio
    async def test_no_active_users(self, db_session, make_user, make_notification):
        inactive = make_user(is_active=False)
        notification = make_notification(
            target=NotificationTarget.USERS,
            recipient_ids=[inactive.id, str(uuid.uuid4())],
        )

        with pytest.raises(RecipientResolutionError) as exc_info:
            await RecipientResolver(db_session).resolve(notification)

        assert exc_info.value.message == NO_ACTIVE_USERS
        assert exc_info.value.error_code == "NO_ACTIVE_USERS"
