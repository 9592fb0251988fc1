from booklingua.router.router import Router, AllModelsExhaustedError
from booklingua.router.base import BaseModel
from booklingua.router.models import ModelResponse, ModelConfig, ModelRole
from booklingua.router.prompt_builder import build_translate_prompt, build_editorial_prompt

__all__ = [
    "Router",
    "AllModelsExhaustedError",
    "BaseModel",
    "ModelResponse",
    "ModelConfig",
    "ModelRole",
    "build_translate_prompt",
    "build_editorial_prompt",
]
