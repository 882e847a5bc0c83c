"""Tests for RosterManager mirror and replace diffs."""

from __future__ import annotations

import pytest
from slixmpp import JID

from smsxmpp.core.errors import RosterNotInitialized
from smsxmpp.gateway.roster import RosterManager
from smsxmpp.stanzas import RosterChange, RosterItem
from tests.mocks import ALICE, BOB, DOMAIN

USER = JID(ALICE)
MOM = f"+15551230000@{DOMAIN}"
DAD = f"+15551230001@{DOMAIN}"


def initialized(items=None) -> RosterManager:
    rosters = RosterManager([ALICE])
    rosters.on_result(USER, items or [])
    return rosters


class TestRosterState:
    def test_manages_only_configured_users(self):
        rosters = RosterManager([ALICE])
        assert rosters.manages(JID(f"{ALICE}/phone"))
        assert not rosters.manages(JID(BOB))

    def test_uninitialized_until_result(self):
        rosters = RosterManager([ALICE])
        assert rosters.roster(USER) is None

    def test_result_skips_removed_items(self):
        # Act
        rosters = initialized(
            [
                RosterChange(jid=JID(MOM), name="Mom", groups=["SMS"], subscription="both"),
                RosterChange(jid=JID(DAD), subscription="remove"),
            ]
        )

        # Assert
        assert rosters.roster(USER) == {MOM: RosterItem(name="Mom", groups=["SMS"])}

    def test_push_adds_and_removes(self):
        rosters = initialized()
        rosters.on_push(USER, [RosterChange(jid=JID(MOM), name="Mom")])
        assert MOM in rosters.roster(USER)
        rosters.on_push(USER, [RosterChange(jid=JID(MOM), subscription="remove")])
        assert rosters.roster(USER) == {}

    def test_push_with_several_items_is_ignored(self):
        rosters = initialized()
        rosters.on_push(USER, [RosterChange(jid=JID(MOM)), RosterChange(jid=JID(DAD))])
        assert rosters.roster(USER) == {}

    def test_push_before_result_is_ignored(self):
        rosters = RosterManager([ALICE])
        rosters.on_push(USER, [RosterChange(jid=JID(MOM))])
        assert rosters.roster(USER) is None

    def test_reset_forgets_rosters(self):
        rosters = initialized()
        rosters.reset()
        assert rosters.roster(USER) is None


class TestReplace:
    def test_before_result_raises(self):
        rosters = RosterManager([ALICE])
        with pytest.raises(RosterNotInitialized):
            rosters.replace(USER, {})

    def test_diff_sets_changed_and_removes_dropped(self):
        # Arrange
        rosters = initialized(
            [
                RosterChange(jid=JID(MOM), name="Mom", subscription="both"),
                RosterChange(jid=JID(DAD), name="Dad", subscription="both"),
            ]
        )

        # Act
        changes = rosters.replace(USER, {MOM: RosterItem(name="Mother")})

        # Assert
        assert changes == [
            RosterChange(jid=JID(MOM), name="Mother", groups=[], subscription="both"),
            RosterChange(jid=JID(DAD), subscription="remove"),
        ]
        assert rosters.roster(USER) == {MOM: RosterItem(name="Mother")}

    def test_unchanged_roster_yields_no_changes(self):
        rosters = initialized([RosterChange(jid=JID(MOM), name="Mom")])
        assert rosters.replace(USER, {MOM: RosterItem(name="Mom")}) == []
