"""Minimal agent that echoes its inputs."""

import asyncio
from typing import Any, Dict, List, Optional

from orchestrator.agent.base import BaseAgent, action


class EchoAgent(BaseAgent):
    """Echo agent used for demos and smoke checks."""

    def __init__(self, name: str = "echo", delay: float = 0.0):
        super().__init__(name)
        self.delay = delay
        self.history: List[Dict[str, Any]] = []

    async def _record(self, action_name: str, payload: Any) -> Dict[str, Any]:
        if self.delay:
            await asyncio.sleep(self.delay)
        entry = {"agent": self.name, "action": action_name, "echo": payload}
        self.history.append(entry)
        return entry

    @action()
    async def run(self, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._record("run", options or {})

    @action()
    async def stop(self) -> Dict[str, Any]:
        self.active = False
        return await self._record("stop", None)

    @action()
    async def echo(self, message: Any = None) -> Dict[str, Any]:
        return await self._record("echo", message)

    @action()
    async def summarize(self, params: Dict[str, Any], context: Dict[str, Any]) -> Dict[str, Any]:
        entry = await self._record("summarize", params)
        return {
            "data": entry,
            "context": {f"{self.name}_summary": sorted(context)},
        }
