"""Producer-side capture: snapshot the Python call stack and post it to the gateway."""

from __future__ import annotations

import functools
import logging
import os
import sys
import sysconfig
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

import requests

from call_graph_live.analysis.models import CallFrame, CallSequence
from call_graph_live.config import ClientConfig

LOGGER = logging.getLogger(__name__)

_THIS_FILE = os.path.normcase(os.path.abspath(__file__))

# one connection pool and one sender thread per process
_SESSION: requests.Session | None = None
_SESSION_LOCK = threading.Lock()
_POST_EXECUTOR = ThreadPoolExecutor(max_workers=1, thread_name_prefix="call-graph-post")


def _library_roots() -> tuple[str, ...]:
    roots = set()
    for key in ("stdlib", "platstdlib", "purelib", "platlib"):
        path = sysconfig.get_paths().get(key)
        if path:
            roots.add(os.path.normcase(os.path.abspath(path)))
    return tuple(sorted(roots))


_LIBRARY_ROOTS = _library_roots()


def is_relevant_file(filename: str) -> bool:
    """Default filter: Python source files that belong to the application, not to libraries."""

    if not filename or filename.startswith("<"):
        return False
    if not filename.endswith(".py"):
        return False
    normalized = os.path.normcase(os.path.abspath(filename))
    if "site-packages" in normalized or "dist-packages" in normalized:
        return False
    return not normalized.startswith(_LIBRARY_ROOTS)


def _structure_name(qualname: str) -> str:
    owner = qualname.rpartition(".")[0].rsplit(".", 1)[-1]
    if "<" in owner:
        # nested functions and lambdas have no declaring class
        return ""
    return owner


def capture_call_stack(
    *,
    skip: int = 0,
    is_relevant: Optional[Callable[[str], bool]] = None,
) -> List[CallFrame]:
    """
    Capture the current call stack as frames ordered outermost caller first.

    Frames from this module are always dropped; ``skip`` drops that many additional innermost
    frames (useful for helper wrappers around :func:`log_call_stack`).
    """

    relevant = is_relevant or is_relevant_file
    frames: List[CallFrame] = []
    frame = sys._getframe(1)
    skipped = 0
    while frame is not None:
        code = frame.f_code
        filename = code.co_filename
        if os.path.normcase(os.path.abspath(filename)) == _THIS_FILE:
            frame = frame.f_back
            continue
        if skipped < skip:
            skipped += 1
            frame = frame.f_back
            continue
        if relevant(filename):
            qualname = getattr(code, "co_qualname", code.co_name)
            frames.append(
                CallFrame(
                    source_file=Path(filename).name,
                    line_number=frame.f_lineno or 0,
                    structure_name=_structure_name(qualname),
                    method_name=code.co_name,
                )
            )
        frame = frame.f_back

    frames.reverse()
    return frames


def _shared_session() -> requests.Session:
    global _SESSION
    with _SESSION_LOCK:
        if _SESSION is None:
            _SESSION = requests.Session()
        return _SESSION


def _post(sequence: CallSequence, config: ClientConfig, session: requests.Session | None) -> None:
    sess = session or _shared_session()
    try:
        response = sess.post(config.endpoint, json=sequence.to_payload(), timeout=config.timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        LOGGER.debug("Failed to post stack trace %s: %s", sequence.trace_id, exc)


def log_call_stack(
    tag: str | None = None,
    *,
    config: ClientConfig | None = None,
    session: requests.Session | None = None,
    blocking: bool = False,
    skip: int = 0,
    is_relevant: Optional[Callable[[str], bool]] = None,
    innermost: CallFrame | None = None,
) -> CallSequence | None:
    """
    Capture the caller's stack and submit it to the gateway.

    ``innermost`` is appended after the captured frames; :func:`traced` uses it for the function
    about to run. Unless ``blocking`` is set, the post is queued on a single background sender,
    and without an explicit ``session`` all posts share one ``requests.Session``. Transport
    failures are only logged, so instrumentation never disturbs the host program. Returns the
    submitted sequence, or ``None`` when no relevant frames were found.
    """

    frames = capture_call_stack(skip=skip, is_relevant=is_relevant)
    if innermost is not None:
        frames.append(innermost)
    if not frames:
        return None

    if tag:
        last = frames[-1]
        frames[-1] = CallFrame(
            source_file=last.source_file,
            line_number=last.line_number,
            structure_name=last.structure_name,
            method_name=f"{last.method_name}+{tag}",
        )

    sequence = CallSequence(
        frames=tuple(frames),
        timestamp=datetime.now(timezone.utc),
        trace_id=f"trace-{uuid.uuid4().hex}",
    )
    config = config or ClientConfig.from_env()

    if blocking:
        _post(sequence, config, session)
    else:
        _POST_EXECUTOR.submit(_post, sequence, config, session)
    return sequence


def flush(timeout: float | None = None) -> None:
    """Block until every queued background post has been attempted."""

    _POST_EXECUTOR.submit(lambda: None).result(timeout=timeout)


def frame_for_function(func: Callable) -> CallFrame:
    """Describe ``func`` as the frame it will occupy once called."""

    code = func.__code__
    return CallFrame(
        source_file=Path(code.co_filename).name,
        line_number=code.co_firstlineno,
        structure_name=_structure_name(getattr(code, "co_qualname", func.__qualname__)),
        method_name=code.co_name,
    )


def traced(func=None, *, tag: str | None = None, **options):
    """Decorator posting the call stack each time the wrapped function is entered."""

    def decorate(target):
        entry = frame_for_function(target)

        @functools.wraps(target)
        def wrapper(*args, **kwargs):
            log_call_stack(tag, innermost=entry, **options)
            return target(*args, **kwargs)

        return wrapper

    if func is not None:
        return decorate(func)
    return decorate


__all__ = ["capture_call_stack", "flush", "frame_for_function", "is_relevant_file", "log_call_stack", "traced"]
