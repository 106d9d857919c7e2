from stockroom_modules.parts.models import CategoryDrift, FamilyGroup, PartWithFamily
from stockroom_modules.parts.service import PartsService

__all__ = ["CategoryDrift", "FamilyGroup", "PartWithFamily", "PartsService"]
