"""
Local Mistral model loader and narration generator.

Loads once, lazily, on first generation. Local directories are opened with
local_files_only=True.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional

import torch
from transformers import AutoModelForCausalLM, AutoTokenizer
from peft import PeftModel

from src.core.exceptions import ModelInferenceError

from .config import LLMConfig, LORA_PATH, USE_LORA
from .prompt import ChatPrompt

logger = logging.getLogger("llm")


@dataclass
class MistralLocalModel:
    """
    Local Mistral wrapper returning only the newly generated text.

    Greedy decoding (do_sample=False) keeps narration reproducible.
    """

    config: LLMConfig
    _tokenizer: Optional[AutoTokenizer] = None
    _model: Optional[AutoModelForCausalLM] = None

    def load(self) -> None:
        if self._model is not None and self._tokenizer is not None:
            return
        device = "cuda" if torch.cuda.is_available() else "cpu"

        logger.info(
            "Loading narration model from %s (local_files_only=%s, device=%s)",
            self.config.model_path,
            self.config.local_files_only,
            device,
        )
        try:
            self._tokenizer = AutoTokenizer.from_pretrained(
                self.config.model_path, local_files_only=self.config.local_files_only
            )
            model = AutoModelForCausalLM.from_pretrained(
                self.config.model_path, local_files_only=self.config.local_files_only
            )
            if USE_LORA:
                logger.info("Attaching LoRA adapter from %s", LORA_PATH)
                model = PeftModel.from_pretrained(
                    model,
                    LORA_PATH,
                    is_trainable=False,
                    local_files_only=self.config.local_files_only,
                )
        except (OSError, ValueError) as exc:
            raise ModelInferenceError(f"Failed to load model {self.config.model_path}: {exc}") from exc

        self._model = model.to(device)
        self._model.eval()

    def _render(self, prompt: ChatPrompt) -> str:
        template = getattr(self._tokenizer, "chat_template", None)
        if not (self.config.use_chat_template and template):
            return prompt.as_text()
        # Mistral templates reject a separate system role; fold it into the user turn.
        messages = [{"role": "user", "content": f"{prompt.system}\n\n{prompt.user}"}]
        return self._tokenizer.apply_chat_template(
            messages, tokenize=False, add_generation_prompt=True
        )

    def generate(self, prompt: ChatPrompt) -> str:
        if self._model is None or self._tokenizer is None:
            self.load()

        text = self._render(prompt)
        max_positions = getattr(self._model.config, "max_position_embeddings", None)
        max_length = min(self._tokenizer.model_max_length, max_positions or self._tokenizer.model_max_length)
        max_input_tokens = max(max_length - self.config.max_new_tokens, 1)

        inputs = self._tokenizer(
            text,
            return_tensors="pt",
            truncation=True,
            max_length=max_input_tokens,
        ).to(self._model.device)
        prompt_length = inputs["input_ids"].shape[1]

        try:
            output_ids = self._model.generate(
                **inputs,
                max_new_tokens=self.config.max_new_tokens,
                repetition_penalty=self.config.repetition_penalty,
                do_sample=False,
                eos_token_id=self._tokenizer.eos_token_id,
                pad_token_id=self._tokenizer.eos_token_id,
            )
        except RuntimeError as exc:
            raise ModelInferenceError(f"Generation failed: {exc}") from exc

        return self._tokenizer.decode(output_ids[0][prompt_length:], skip_special_tokens=True).strip()
