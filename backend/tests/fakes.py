"""
Test doubles for the model provider.
"""

from proveit.llm.base import LLMProvider, BlockStart, BlockDelta, BlockStop


class ScriptedProvider(LLMProvider):
    """Provider that replays a fixed event list, optionally failing afterwards."""

    def __init__(self, events=None, error=None):
        super().__init__(api_key="test-key", model="test-model")
        self.events = list(events or [])
        self.error = error
        self.calls = []
        self.closed = False

    async def stream_events(self, messages, system, tools=None, max_tokens=None):
        self.calls.append({"messages": messages, "system": system, "tools": tools})
        try:
            for event in self.events:
                yield event
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True


def text_events(*chunks, index=0):
    """Events for one text block made of the given deltas."""
    events = [BlockStart(index=index, block_type="text")]
    events += [BlockDelta(index=index, delta_type="text_delta", text=chunk) for chunk in chunks]
    events.append(BlockStop(index=index))
    return events


def search_events(*fragments, index=0, name="web_search"):
    """Events for one web search tool call whose input arrives in fragments."""
    events = [BlockStart(index=index, block_type="server_tool_use", name=name)]
    events += [BlockDelta(index=index, delta_type="input_json_delta", partial_json=f) for f in fragments]
    events.append(BlockStop(index=index))
    return events
