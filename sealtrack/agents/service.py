"""Identity collaborator: agent lookup."""
from typing import Optional

from sqlalchemy.orm import Session

from sealtrack.agents.models import Agent


class AgentDirectory:
    """Confirms that an opaque agent id exists and whether it is active."""

    def __init__(self, db: Session):
        self.db = db

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        """Get agent by ID."""
        return self.db.get(Agent, agent_id)

    def register(self, agent_id: str, name: str, is_active: bool = True) -> Agent:
        """Mirror an identity-provider agent locally (idempotent)."""
        agent = self.get_agent(agent_id)
        if agent is None:
            agent = Agent(id=agent_id, name=name, is_active=is_active)
            self.db.add(agent)
        else:
            agent.name = name
            agent.is_active = is_active
        self.db.commit()
        return agent
