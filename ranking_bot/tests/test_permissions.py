from ranking_bot.core.permissions import can_manage_events, is_administrator, is_server_owner
from ranking_bot.tests.doubles import DummyGuild, DummyUser


def test_server_owner_can_manage():
    guild = DummyGuild(owner_id=5)
    assert is_server_owner(DummyUser(5), guild)
    assert can_manage_events(DummyUser(5), guild)


def test_administrator_can_manage():
    user = DummyUser(6, administrator=True)
    assert is_administrator(user)
    assert can_manage_events(user, DummyGuild(owner_id=5))


def test_bot_owner_can_manage():
    assert can_manage_events(DummyUser(7), DummyGuild(owner_id=5), owner_ids={7})


def test_regular_members_and_dms_are_refused():
    assert not can_manage_events(DummyUser(8), DummyGuild(owner_id=5))
    assert not can_manage_events(DummyUser(5), None)
