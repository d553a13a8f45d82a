"""Agent id to contact number lookup."""

from __future__ import annotations

from claimassist.escalation.levels import EscalationLevelTable


class AgentDirectory:
    """IAgentDirectory over the level table's contact list.

    Unknown agents resolve to the default contact so an alert is never dropped.
    """

    def __init__(self, contacts: dict[str, str], default_contact: str) -> None:
        self._contacts = dict(contacts)
        self._default = default_contact

    @classmethod
    def from_table(cls, table: EscalationLevelTable, default_contact: str) -> "AgentDirectory":
        return cls(table.agent_contacts, default_contact)

    def contact_for(self, agent_id: str) -> str:
        return self._contacts.get(agent_id, self._default)
