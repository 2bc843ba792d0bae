"""Prompt preparation and sending."""

from obsius.prompts.paths import build_file_uri, convert_windows_path_to_wsl
from obsius.prompts.preparation import PreparePromptInput, PreparePromptResult, prepare_prompt
from obsius.prompts.sending import SendPreparedPromptInput, SendPromptResult, send_prepared_prompt

__all__ = [
    "PreparePromptInput",
    "PreparePromptResult",
    "SendPreparedPromptInput",
    "SendPromptResult",
    "build_file_uri",
    "convert_windows_path_to_wsl",
    "prepare_prompt",
    "send_prepared_prompt",
]
