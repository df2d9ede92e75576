"""Timeline annotations recorded while a test runs.

Annotations are points, intervals or continuous spans tagged with a
category and a background colour. A module-wide recorder collects them
so that servers, clients and the test framework can all annotate
without passing a recorder around.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Iterable, Sequence

COLOR_INFO = "#FAFAFA"
COLOR_NEUTRAL = "#FFECB3"
COLOR_SUCCESS = "#C8E6C9"
COLOR_FAILURE = "#FFCDD2"
COLOR_FAULT = "#B3E5FC"
COLOR_USER = "#FFF176"

TAG_CHECKER = "$ Checker"
TAG_PARTITION = "$ Failure"
TAG_INFO = "$ Test Info"

# Gap inserted between consecutive spans so that they do not overlap
# when drawn, and the length given to the closing marker.
_SPAN_GAP = 1000


def timestamp() -> int:
    """Return the current time in nanoseconds since the epoch."""
    return time.time_ns()


def _fmt_ints(values: Iterable[int]) -> str:
    return "[" + " ".join(str(v) for v in values) + "]"


@dataclass(frozen=True)
class AnnotationRecord:
    """One annotation; ``end`` is 0 for a point in time."""

    tag: str
    start: int
    description: str
    details: str
    background_color: str
    end: int = 0


@dataclass
class _Continuous:
    start: int
    desp: str
    details: str
    bgcolor: str

    def closed(self, tag: str, end: int) -> AnnotationRecord:
        return AnnotationRecord(
            tag=tag,
            start=self.start,
            end=end,
            description=self.desp,
            details=self.details,
            background_color=self.bgcolor,
        )


class Annotation:
    """A thread-safe collection of annotations."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[AnnotationRecord] = []
        self._continuous: dict[str, _Continuous] = {}
        self._finalized = False

    def annotate_point(self, tag: str, desp: str, details: str, bgcolor: str) -> None:
        """Record a point-in-time annotation."""
        with self._lock:
            self._records.append(
                AnnotationRecord(
                    tag=tag,
                    start=timestamp(),
                    description=desp,
                    details=details,
                    background_color=bgcolor,
                )
            )

    def annotate_interval(
        self, tag: str, start: int, desp: str, details: str, bgcolor: str
    ) -> None:
        """Record an interval from ``start`` until now."""
        with self._lock:
            self._records.append(
                AnnotationRecord(
                    tag=tag,
                    start=start,
                    end=timestamp(),
                    description=desp,
                    details=details,
                    background_color=bgcolor,
                )
            )

    def annotate_continuous(self, tag: str, desp: str, details: str, bgcolor: str) -> None:
        """Begin a span for ``tag``, closing the span already open for it."""
        with self._lock:
            previous = self._continuous.get(tag)
            if previous is None:
                self._continuous[tag] = _Continuous(timestamp(), desp, details, bgcolor)
                return
            t = timestamp()
            self._records.append(previous.closed(tag, t))
            self._continuous[tag] = _Continuous(t + _SPAN_GAP, desp, details, bgcolor)

    def annotate_continuous_end(self, tag: str) -> None:
        """Close the span open for ``tag``, if there is one."""
        with self._lock:
            previous = self._continuous.pop(tag, None)
            if previous is None:
                return
            self._records.append(previous.closed(tag, timestamp()))

    def finalize(self) -> list[AnnotationRecord]:
        """Close all open spans and return every annotation; mark as finalized."""
        with self._lock:
            t = timestamp()
            result = list(self._records)
            result.extend(cont.closed(tag, t) for tag, cont in self._continuous.items())
            self._finalized = True
            return result

    def clear(self) -> None:
        """Forget all annotations and the finalized mark."""
        with self._lock:
            self._records = []
            self._continuous = {}
            self._finalized = False

    def is_finalized(self) -> bool:
        """Return whether ``finalize`` has been called since the last clear."""
        with self._lock:
            return self._finalized

    def set_finalized(self) -> None:
        """Mark the collection as finalized."""
        with self._lock:
            self._finalized = True


@dataclass
class _CheckerBegin:
    ts: int = 0
    details: str = ""


@dataclass
class FrameworkInfo:
    """What the test framework knows of the servers' connectivity and crashes."""

    nservers: int
    connected: list[bool] = field(default_factory=list)
    crashed: list[bool] = field(default_factory=list)
    ckbegin: _CheckerBegin = field(default_factory=_CheckerBegin)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @classmethod
    def for_servers(cls, nservers: int) -> FrameworkInfo:
        """Return info for ``nservers`` servers, all connected and none crashed."""
        return cls(
            nservers=nservers,
            connected=[True] * nservers,
            crashed=[False] * nservers,
        )


_annotation = Annotation()
_finfo: FrameworkInfo | None = None


def _framework() -> FrameworkInfo:
    if _finfo is None:
        raise RuntimeError("annotate_test has not been called")
    return _finfo


def finalize_annotations(end: str) -> list[AnnotationRecord]:
    """Finalize the annotations and append a closing marker described by ``end``."""
    records = _annotation.finalize()
    t = timestamp()
    records.append(
        AnnotationRecord(
            tag=TAG_INFO,
            start=t,
            end=t + _SPAN_GAP,
            description=end,
            details=end,
            background_color=COLOR_INFO,
        )
    )
    return records


def annotate_point_color(tag: str, desp: str, details: str, bgcolor: str) -> None:
    _annotation.annotate_point(tag, desp, details, bgcolor)


def get_annotate_timestamp() -> int:
    return timestamp()


def annotate_interval_color(tag: str, start: int, desp: str, details: str, bgcolor: str) -> None:
    _annotation.annotate_interval(tag, start, desp, details, bgcolor)


def annotate_continuous_color(tag: str, desp: str, details: str, bgcolor: str) -> None:
    _annotation.annotate_continuous(tag, desp, details, bgcolor)


def annotate_continuous_end(tag: str) -> None:
    _annotation.annotate_continuous_end(tag)


def annotate(tag: str, desp: str, details: str) -> None:
    """Record a user point annotation."""
    _annotation.annotate_point(tag, desp, details, COLOR_USER)


def annotate_interval(tag: str, start: int, desp: str, details: str) -> None:
    """Record a user interval annotation."""
    _annotation.annotate_interval(tag, start, desp, details, COLOR_USER)


def annotate_continuous(tag: str, desp: str, details: str) -> None:
    """Begin a user continuous annotation."""
    _annotation.annotate_continuous(tag, desp, details, COLOR_USER)


def annotate_info(desp: str, details: str) -> None:
    annotate_point_color(TAG_INFO, desp, details, COLOR_INFO)


def annotate_info_interval(start: int, desp: str, details: str) -> None:
    annotate_interval_color(TAG_INFO, start, desp, details, COLOR_INFO)


def annotate_test(desp: str, nservers: int) -> None:
    """Start annotating a new test with ``nservers`` servers."""
    global _finfo
    details = f"{desp} ({nservers} servers)"
    _finfo = FrameworkInfo.for_servers(nservers)
    _annotation.clear()
    annotate_info(details, details)


def annotate_checker_begin(details: str) -> None:
    """Mark the start of a check."""
    finfo = _framework()
    with finfo.lock:
        finfo.ckbegin = _CheckerBegin(ts=timestamp(), details=details)


def annotate_checker_end(desp: str, details: str, color: str) -> None:
    """Record the outcome of a check, as an interval if a check was begun."""
    finfo = _framework()
    with finfo.lock:
        begin = finfo.ckbegin
        if begin.ts == 0:
            annotate_point_color(TAG_CHECKER, desp, details, color)
            return
        annotate_interval_color(
            TAG_CHECKER, begin.ts, desp, f"{begin.details}: {details}", color
        )
        finfo.ckbegin = _CheckerBegin()


def annotate_checker_success(desp: str, details: str) -> None:
    annotate_checker_end(desp, details, COLOR_SUCCESS)


def annotate_checker_failure(desp: str, details: str) -> None:
    annotate_checker_end(desp, details, COLOR_FAILURE)


def annotate_checker_neutral(desp: str, details: str) -> None:
    annotate_checker_end(desp, details, COLOR_NEUTRAL)


def set_annotation_finalized() -> None:
    _annotation.set_finalized()


def get_annotation_finalized() -> bool:
    return _annotation.is_finalized()


def _annotate_fault(finfo: FrameworkInfo) -> None:
    """Describe the current partitions and crashes; caller holds finfo.lock."""
    if all(finfo.connected) and not any(finfo.crashed):
        annotate_continuous_end(TAG_PARTITION)
        return

    conn: list[int] = []
    crashes: list[int] = []
    parts = ["partition = "]
    for sid, connected in enumerate(finfo.connected):
        if finfo.crashed[sid]:
            crashes.append(sid)
            continue
        if connected:
            conn.append(sid)
        else:
            parts.append(f"[{sid}] ")
    if conn:
        parts.append(_fmt_ints(conn))
    if crashes:
        parts.append(f" / crash = {_fmt_ints(crashes)}")
    text = "".join(parts)
    annotate_continuous_color(TAG_PARTITION, text, text, COLOR_FAULT)


def annotate_connection(connection: Sequence[bool]) -> None:
    """Record which servers are connected, if that has changed."""
    finfo = _framework()
    with finfo.lock:
        if list(finfo.connected) == list(connection):
            return
        n = min(len(finfo.connected), len(connection))
        finfo.connected[:n] = [bool(c) for c in connection[:n]]
        _annotate_fault(finfo)


def annotate_two_partitions(p1: Sequence[int], p2: Sequence[int]) -> None:
    """Record a split of the servers into two partitions."""
    text = f"partition = {_fmt_ints(p1)} {_fmt_ints(p2)}"
    annotate_continuous_color(TAG_PARTITION, text, text, COLOR_FAULT)


def annotate_clear_failure() -> None:
    """Record that all servers are up and connected."""
    finfo = _framework()
    with finfo.lock:
        finfo.crashed = [False] * len(finfo.crashed)
        finfo.connected = [True] * len(finfo.connected)
        annotate_continuous_end(TAG_PARTITION)


def annotate_shutdown(servers: Iterable[int]) -> None:
    """Record that ``servers`` have crashed."""
    finfo = _framework()
    with finfo.lock:
        changed = False
        for sid in servers:
            if not finfo.crashed[sid]:
                changed = True
            finfo.crashed[sid] = True
        if changed:
            _annotate_fault(finfo)


def annotate_shutdown_all() -> None:
    with _framework().lock:
        n = _framework().nservers
    annotate_shutdown(range(n))


def annotate_restart(servers: Iterable[int]) -> None:
    """Record that ``servers`` have restarted."""
    finfo = _framework()
    with finfo.lock:
        changed = False
        for sid in servers:
            if finfo.crashed[sid]:
                changed = True
            finfo.crashed[sid] = False
        if changed:
            _annotate_fault(finfo)


def annotate_restart_all() -> None:
    with _framework().lock:
        n = _framework().nservers
    annotate_restart(range(n))