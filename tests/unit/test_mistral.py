"""
Unit tests for the local model wrapper that do not load weights.
"""

from backend.narration_service import create_narration_service
from llm.config import LLMConfig
from llm.mistral import MistralLocalModel
from llm.prompt import ChatPrompt


class _Tokenizer:
    def __init__(self, chat_template=None):
        self.chat_template = chat_template
        self.messages = None

    def apply_chat_template(self, messages, tokenize, add_generation_prompt):
        self.messages = messages
        return "[INST] " + messages[0]["content"] + " [/INST]"


def _prompt():
    return ChatPrompt(system="Be brief.", user="Explain Jahra.")


def test_factory_defers_model_loading():
    service = create_narration_service("mistralai/Mistral-7B-Instruct-v0.2")

    assert isinstance(service.model, MistralLocalModel)
    assert service.model._model is None
    assert service.model.config.local_files_only is False


def test_local_directory_uses_local_files_only(tmp_path):
    assert LLMConfig(model_path=str(tmp_path)).local_files_only is True


def test_render_folds_system_into_user_turn():
    tokenizer = _Tokenizer(chat_template="{{ messages }}")
    model = MistralLocalModel(config=LLMConfig(model_path="m"), _tokenizer=tokenizer)

    text = model._render(_prompt())

    assert text == "[INST] Be brief.\n\nExplain Jahra. [/INST]"
    assert [m["role"] for m in tokenizer.messages] == ["user"]


def test_render_without_template_uses_plain_text():
    model = MistralLocalModel(config=LLMConfig(model_path="m"), _tokenizer=_Tokenizer())

    assert model._render(_prompt()) == "Be brief.\n\nExplain Jahra.\n"
