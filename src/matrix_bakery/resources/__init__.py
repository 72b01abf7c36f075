from .bake_backend import BakeBackendResource
from .bake_config import BakeConfigResource

__all__ = [
    "BakeBackendResource",
    "BakeConfigResource",
]
