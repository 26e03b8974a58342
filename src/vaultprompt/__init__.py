"""vaultprompt: run LLM prompts against Markdown notes and the notes they embed."""

__version__ = "0.1.0"

from .expansion import expand_linked_documents
from .parser.callouts import filter_callouts

__all__ = ["__version__", "expand_linked_documents", "filter_callouts"]
