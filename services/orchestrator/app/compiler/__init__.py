from .constraints import MAX_REINFORCEMENT_LEVEL, ConstraintFragment, required_fragments
from .engine import PromptCompilationError, compile_prompt

__all__ = [
    "MAX_REINFORCEMENT_LEVEL",
    "ConstraintFragment",
    "PromptCompilationError",
    "compile_prompt",
    "required_fragments",
]
