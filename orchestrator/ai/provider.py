"""Text generation collaborator contract."""

from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class TextGenerator(Protocol):
    """Anything that can turn a prompt into text."""

    async def complete(
        self,
        prompt: str,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        **kwargs: Any
    ) -> str: ...
