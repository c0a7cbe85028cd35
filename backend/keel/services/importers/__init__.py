# backend/keel/services/importers/__init__.py
from .base import BaseImporter
from .cadets import CadetsImporter
from .vessels import VesselsImporter
from .tasks import TasksImporter
from .assignments import AssignmentsImporter


REGISTRY: dict[str, BaseImporter] = {
    "cadet": CadetsImporter(),
    "cadets": CadetsImporter(),
    "vessel": VesselsImporter(),
    "vessels": VesselsImporter(),
    "task": TasksImporter(),
    "tasks": TasksImporter(),
    "assignment": AssignmentsImporter(),
    "assignments": AssignmentsImporter(),
}


def get_importer(entity: str) -> BaseImporter:
    key = (entity or "").lower().strip()
    if key not in REGISTRY:
        raise KeyError(f"Unsupported entity: {entity}")
    return REGISTRY[key]
