from sharktrack.models.shark import Shark
from sharktrack.models.position import SharkPosition

__all__ = ["Shark", "SharkPosition"]
