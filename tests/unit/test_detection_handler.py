"""Тесты приёма сообщений групп и списка управляемых групп"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram.enums import ChatMemberStatus
from aiogram.exceptions import TelegramForbiddenError
from sqlalchemy import select

from modguard.database.models import ChatAdmin, ManagedChat
from modguard.handlers.detection_handler import (
    build_check_request,
    on_bot_membership_changed,
    on_chat_member_updated,
    on_group_message,
    on_group_message_edited,
    sync_chat_admins,
)
from modguard.services.detection.repository import get_message
from modguard.services.moderation.repository import is_chat_admin


PHOTO = [
    {"file_id": "small", "file_unique_id": "s", "width": 90, "height": 90},
    {"file_id": "large", "file_unique_id": "l", "width": 1280, "height": 1280},
]


@pytest.fixture
def orchestrator_mock():
    orchestrator = AsyncMock()
    orchestrator.run_detection.return_value = None
    return orchestrator


class TestBuildCheckRequest:

    def test_photo_with_caption(self, message_factory):
        message = message_factory(text=None, caption="Заработок тут", photo=PHOTO, user_id=77)

        request = build_check_request(message)

        assert request.user_id == 77
        assert request.text == "Заработок тут"
        assert request.image_ref == "large"
        assert request.file_ref is None
        assert request.has_attachments

    def test_document_is_file_ref(self, message_factory):
        document = {"file_id": "doc-1", "file_unique_id": "d1"}
        request = build_check_request(message_factory(text=None, document=document))

        assert request.file_ref == "doc-1"
        assert request.text == ""

    def test_reply_to_channel_post(self, message_factory):
        reply = {
            "message_id": 1,
            "date": 1700000000,
            "chat": {"id": -1001, "type": "supergroup", "title": "Test chat"},
            "sender_chat": {"id": -100500, "type": "channel", "title": "Канал"},
            "text": "Пост канала",
        }
        message = message_factory(message_id=2, text="Пиши в лс", reply_to_message=reply)

        assert build_check_request(message).metadata == {"is_reply_to_channel_post": True}


class TestMessageHandlers:

    async def test_new_message_saved_and_checked(self, message_factory, db_session, orchestrator_mock):
        message = message_factory(message_id=5, user_id=77, text="Привет")

        await on_group_message(message, db_session, orchestrator_mock)

        stored = await get_message(db_session, message.chat.id, 5)
        assert stored.text == "Привет"
        assert stored.edit_count == 0
        request = orchestrator_mock.run_detection.await_args.args[0]
        assert request.message_id == 5
        assert orchestrator_mock.run_detection.await_args.kwargs["edit_version"] == 0

    async def test_edit_rechecked_with_version(self, message_factory, db_session, orchestrator_mock):
        await on_group_message(message_factory(message_id=6, text="Привет"), db_session, orchestrator_mock)

        await on_group_message_edited(
            message_factory(message_id=6, text="Пиши в лс, заработок"), db_session, orchestrator_mock
        )
        await on_group_message_edited(
            message_factory(message_id=6, text="Пиши в лс, заработок 300%"), db_session, orchestrator_mock
        )

        versions = [call.kwargs["edit_version"] for call in orchestrator_mock.run_detection.await_args_list]
        assert versions == [0, 1, 2]
        stored = await get_message(db_session, -1001, 6)
        assert stored.text == "Пиши в лс, заработок 300%"

    async def test_channel_post_skipped(self, message_factory, db_session, orchestrator_mock):
        message = message_factory(sender_chat={"id": -100500, "type": "channel", "title": "Канал"})

        await on_group_message(message, db_session, orchestrator_mock)

        orchestrator_mock.run_detection.assert_not_awaited()

    async def test_bot_message_skipped(self, message_factory, db_session, orchestrator_mock):
        message = message_factory(**{"from": {"id": 999, "is_bot": True, "first_name": "OtherBot"}})

        await on_group_message(message, db_session, orchestrator_mock)

        orchestrator_mock.run_detection.assert_not_awaited()


def _membership_event(status, chat_id=-1001, title="Группа"):
    event = MagicMock()
    event.chat.id = chat_id
    event.chat.title = title
    event.new_chat_member.status = status
    return event


def _admin(user_id):
    member = MagicMock()
    member.user.id = user_id
    return member


class TestManagedChats:

    async def test_sync_replaces_admins(self, bot_mock, db_session):
        db_session.add(ChatAdmin(chat_id=-1001, user_id=1))
        await db_session.commit()
        bot_mock.get_chat_administrators.return_value = [_admin(2), _admin(3)]

        count = await sync_chat_admins(bot_mock, db_session, -1001)

        assert count == 2
        result = await db_session.execute(select(ChatAdmin.user_id).where(ChatAdmin.chat_id == -1001))
        assert sorted(result.scalars().all()) == [2, 3]

    async def test_bot_promoted(self, bot_mock, db_session):
        bot_mock.get_chat_administrators.return_value = [_admin(2)]

        await on_bot_membership_changed(_membership_event(ChatMemberStatus.ADMINISTRATOR), bot_mock, db_session)

        chat = (await db_session.execute(select(ManagedChat).where(ManagedChat.chat_id == -1001))).scalar_one()
        assert chat.is_active
        assert chat.title == "Группа"

    async def test_admin_sync_failure_keeps_chat(self, bot_mock, db_session):
        bot_mock.get_chat_administrators.side_effect = TelegramForbiddenError(method=MagicMock(), message="Forbidden")

        await on_bot_membership_changed(_membership_event(ChatMemberStatus.ADMINISTRATOR), bot_mock, db_session)

        chat = (await db_session.execute(select(ManagedChat).where(ManagedChat.chat_id == -1001))).scalar_one()
        assert chat.is_active

    async def test_bot_demoted(self, bot_mock, db_session):
        await on_bot_membership_changed(_membership_event(ChatMemberStatus.ADMINISTRATOR), bot_mock, db_session)

        await on_bot_membership_changed(_membership_event(ChatMemberStatus.MEMBER), bot_mock, db_session)

        chat = (await db_session.execute(select(ManagedChat).where(ManagedChat.chat_id == -1001))).scalar_one()
        assert not chat.is_active


def _member_event(old_status, new_status, user_id=55, chat_id=-1001):
    event = MagicMock()
    event.chat.id = chat_id
    event.old_chat_member.status = old_status
    event.new_chat_member.status = new_status
    event.new_chat_member.user.id = user_id
    return event


class TestChatAdminUpdates:

    async def test_promoted_member_becomes_admin(self, db_session):
        await on_chat_member_updated(_member_event(ChatMemberStatus.MEMBER, ChatMemberStatus.ADMINISTRATOR), db_session)

        assert await is_chat_admin(db_session, -1001, 55)

    async def test_repeat_promotion_keeps_single_row(self, db_session):
        db_session.add(ChatAdmin(chat_id=-1001, user_id=55))
        await db_session.commit()

        await on_chat_member_updated(_member_event(ChatMemberStatus.RESTRICTED, ChatMemberStatus.CREATOR), db_session)

        rows = (await db_session.execute(select(ChatAdmin).where(ChatAdmin.user_id == 55))).scalars().all()
        assert len(rows) == 1

    async def test_demoted_admin_removed(self, db_session):
        db_session.add(ChatAdmin(chat_id=-1001, user_id=55))
        db_session.add(ChatAdmin(chat_id=-1002, user_id=55))
        await db_session.commit()

        await on_chat_member_updated(_member_event(ChatMemberStatus.ADMINISTRATOR, ChatMemberStatus.LEFT), db_session)

        assert not await is_chat_admin(db_session, -1001, 55)
        assert await is_chat_admin(db_session, -1002, 55)

    async def test_plain_member_change_ignored(self, db_session):
        await on_chat_member_updated(_member_event(ChatMemberStatus.LEFT, ChatMemberStatus.MEMBER), db_session)

        assert (await db_session.execute(select(ChatAdmin))).first() is None
