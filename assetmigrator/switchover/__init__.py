"""
Volume switch-over: repoint host volumes between filesystem handles.
"""

from .mapping import SwitchDirection, VolumeMapping
from .service import (
    SwitchPair,
    SwitchPlan,
    SwitchResult,
    SwitchVerification,
    VolumeSwitchService,
)

__all__ = [
    "SwitchDirection",
    "SwitchPair",
    "SwitchPlan",
    "SwitchResult",
    "SwitchVerification",
    "VolumeMapping",
    "VolumeSwitchService",
]
