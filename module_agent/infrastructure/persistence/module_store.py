from typing import List

from module_agent.domain.models.module import ModuleDefinition
from module_agent.infrastructure.persistence.firestore_client import modules_ref


async def list_modules(db, user_id: str) -> List[ModuleDefinition]:
    """All module definitions owned by the user, ordered by id"""

    snapshots = await modules_ref(db, user_id).get()
    modules = [ModuleDefinition.from_document(s.id, s.to_dict() or {}) for s in snapshots]
    return sorted(modules, key=lambda module: module.id)
