"""Directory layout of a dokuforge workspace.

::

    <root>/data/{agents,plans,criteria,conventions,byo}/<id>[@<timestamp>]
    <root>/keys/<role>s/<name>/<timestamp|latest>/
    <root>/ops/{previews,certified,compiled,logs,reports}/...
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from dokuforge.models.identity import IdentityRole


class EntityType(str, Enum):
    """Kinds of versioned source entity and the file each version holds."""

    AGENT = "agents"
    PLAN = "plans"
    CRITERIA = "criteria"
    CONVENTIONS = "conventions"
    BYO = "byo"

    @property
    def payload_file(self) -> str | None:
        """Name of the JSON payload file, or ``None`` for free-form dirs."""
        return _PAYLOAD_FILES[self]


_PAYLOAD_FILES: dict[EntityType, str | None] = {
    EntityType.AGENT: "identity.json",
    EntityType.PLAN: "plan.json",
    EntityType.CRITERIA: "criteria.json",
    EntityType.CONVENTIONS: "conventions.json",
    EntityType.BYO: None,
}

# Alias names, in resolution order.
CURRENT = "current"
LATEST = "latest"
ALIASES = (CURRENT, LATEST)


class ForgeLayout:
    """Path arithmetic for one workspace root.  Creates nothing."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    @property
    def data_dir(self) -> Path:
        return self.root / "data"

    @property
    def keys_dir(self) -> Path:
        return self.root / "keys"

    @property
    def ops_dir(self) -> Path:
        return self.root / "ops"

    def entity_dir(self, entity_type: EntityType) -> Path:
        return self.data_dir / EntityType(entity_type).value

    def role_dir(self, role: IdentityRole) -> Path:
        return self.keys_dir / IdentityRole(role).directory

    # -- pipeline outputs ---------------------------------------------------

    def previews_dir(self, agent_id: str) -> Path:
        return self.ops_dir / "previews" / agent_id

    def certified_dir(self, agent_id: str) -> Path:
        return self.ops_dir / "certified" / agent_id

    def compiled_dir(self, agent_id: str) -> Path:
        return self.ops_dir / "compiled" / agent_id

    def logs_dir(self, stage: str, agent_id: str) -> Path:
        return self.ops_dir / "logs" / stage / agent_id

    def reports_dir(self, stage: str, agent_id: str) -> Path:
        return self.ops_dir / "reports" / stage / agent_id

    @property
    def audit_ledger_path(self) -> Path:
        return self.ops_dir / "logs" / "audit.jsonl"

    def __repr__(self) -> str:
        return f"<ForgeLayout root={str(self.root)!r}>"
