"""Pipeline generation services: gateway, progress stream and orchestrator."""

from .gateway import TextGenerationGateway, get_text_generation_gateway
from .orchestrator import GenerationOrchestrator, get_generation_orchestrator
from .progress import ProgressStream


__all__ = [
    "GenerationOrchestrator",
    "ProgressStream",
    "TextGenerationGateway",
    "get_generation_orchestrator",
    "get_text_generation_gateway",
]
