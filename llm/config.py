"""
Configuration for the local narration model.

Decoding is greedy so narration for the same anomaly list stays stable.
"""

from __future__ import annotations

import os

from pathlib import Path

from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    """
    Configuration for the local Mistral narration model.

    Notes:
    - model_path is a local directory or a hub id; local directories are
      loaded with local_files_only.
    - max_new_tokens bounds narration length; anomaly lists can be long.
    - use_chat_template wraps system/user prompts with the tokenizer template
      when the tokenizer ships one.
    """

    model_path: str = Field(..., description="Filesystem path or hub id of the model")
    max_new_tokens: int = Field(768, ge=64, le=4096)
    repetition_penalty: float = Field(1.05, ge=1.0, le=2.0)
    use_chat_template: bool = True
    local_files_only: bool = False

    def model_post_init(self, __context: object) -> None:
        if Path(self.model_path).exists():
            self.local_files_only = True


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


# LoRA adapter toggle for a finance-tuned narration head
USE_LORA = _parse_bool(os.getenv("USE_LORA"), False)
LORA_PATH = os.getenv("LORA_PATH", "llm/models/lora")
