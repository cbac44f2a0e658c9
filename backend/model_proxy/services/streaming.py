"""
streaming.py – backend-agnostic reduction of a streamed response body.

A provider supplies a line parser (SSE or NDJSON); reduce_stream() rebuilds
complete lines across chunk boundaries, parses them in order and forwards the
resulting increments to a StreamSink.  sink.on_done() runs exactly once per
call, whatever happens.
"""
from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass
from typing import AsyncIterable, Callable, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamIncrement:
    """One parsed line: a content/thinking fragment, or the end-of-stream marker."""

    content: Optional[str] = None
    thinking: Optional[str] = None
    is_done: bool = False
    reason: Optional[str] = None

    @classmethod
    def done(cls, reason: str) -> "StreamIncrement":
        return cls(is_done=True, reason=reason)


LineParser = Callable[[str], StreamIncrement]


class StreamSink(Protocol):
    def on_content(self, chunk: str) -> None: ...

    def on_thinking(self, chunk: str) -> None: ...

    def on_done(self) -> None: ...


def _noop(*_args) -> None:
    return None


@dataclass
class CallbackSink:
    """Adapt plain callables to the StreamSink protocol."""

    content: Callable[[str], None] = _noop
    thinking: Callable[[str], None] = _noop
    done: Callable[[], None] = _noop

    def on_content(self, chunk: str) -> None:
        self.content(chunk)

    def on_thinking(self, chunk: str) -> None:
        self.thinking(chunk)

    def on_done(self) -> None:
        self.done()


def _deliver(increment: StreamIncrement, sink: StreamSink) -> None:
    if isinstance(increment.content, str):
        sink.on_content(increment.content)
    if isinstance(increment.thinking, str):
        sink.on_thinking(increment.thinking)


async def reduce_stream(
    body: AsyncIterable[bytes],
    parse_line: LineParser,
    sink: StreamSink,
) -> None:
    """Drive *parse_line* over *body* and feed *sink*.

    Errors raised while reading or parsing are logged, not re-raised: once a
    stream has started the caller can only be told that it ended.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    leftover = ""

    try:
        logger.debug("Stream: START")
        async for chunk in body:
            lines = (leftover + decoder.decode(chunk)).split("\n")
            leftover = lines.pop()

            for raw in lines:
                line = raw.strip()
                if not line:
                    continue
                increment = parse_line(line)
                if increment.is_done:
                    logger.debug("Stream: END (%s)", increment.reason)
                    return
                _deliver(increment, sink)

        # Source closed without a done marker; flush the trailing partial line
        tail = (leftover + decoder.decode(b"", final=True)).strip()
        if tail:
            increment = parse_line(tail)
            if not increment.is_done:
                _deliver(increment, sink)
        logger.debug("Stream: END (normal close)")
    except Exception:
        logger.exception("Error during stream processing")
    finally:
        sink.on_done()
