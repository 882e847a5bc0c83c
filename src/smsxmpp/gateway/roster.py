"""Roster manager: mirror of each managed user's roster, and replace/diff for external sync."""

from __future__ import annotations

from loguru import logger
from slixmpp import JID

from smsxmpp.core.errors import RosterNotInitialized
from smsxmpp.stanzas import RosterChange, RosterItem

Roster = dict[str, RosterItem]


class RosterManager:
    """Per-user roster state. None until the server answers our roster get."""

    def __init__(self, users: list[str] | None = None) -> None:
        self._rosters: dict[str, Roster | None] = {JID(u).bare: None for u in users or []}

    def users(self) -> list[str]:
        return list(self._rosters)

    def manages(self, user: JID) -> bool:
        return user.bare in self._rosters

    def roster(self, user: JID) -> Roster | None:
        current = self._rosters.get(user.bare)
        return dict(current) if current is not None else None

    def reset(self) -> None:
        """Forget all rosters (new session; the server is queried again)."""
        for user in self._rosters:
            self._rosters[user] = None

    def on_result(self, user: JID, items: list[RosterChange]) -> Roster:
        """Server answered our roster get: replace the mirror wholesale."""
        roster: Roster = {}
        for item in items:
            if item.subscription == "remove":
                continue
            roster[item.jid.bare] = RosterItem(name=item.name, groups=list(item.groups))
        self._rosters[user.bare] = roster
        logger.info("Roster for {} initialized with {} items", user.bare, len(roster))
        return dict(roster)

    def on_push(self, user: JID, items: list[RosterChange]) -> None:
        """Server pushed a roster change; exactly one item per push."""
        roster = self._rosters.get(user.bare)
        if roster is None:
            return
        if len(items) != 1:
            logger.debug("Ignoring roster push for {} with {} items", user.bare, len(items))
            return
        item = items[0]
        if item.subscription == "remove":
            roster.pop(item.jid.bare, None)
        else:
            roster[item.jid.bare] = RosterItem(name=item.name, groups=list(item.groups))

    def replace(self, user: JID, new_roster: Roster) -> list[RosterChange]:
        """Make the mirror equal new_roster; return the roster set items that get the server there."""
        roster = self._rosters.get(user.bare)
        if roster is None:
            raise RosterNotInitialized(
                f"Roster for {user.bare} is not initialized", code="roster_not_initialized", details={"jid": user.bare}
            )
        changes: list[RosterChange] = []
        for jid, item in new_roster.items():
            current = roster.get(jid)
            if current != item:
                roster[jid] = item
                changes.append(RosterChange(jid=JID(jid), name=item.name, groups=list(item.groups), subscription="both"))
        for jid in [j for j in roster if j not in new_roster]:
            del roster[jid]
            changes.append(RosterChange(jid=JID(jid), subscription="remove"))
        return changes
