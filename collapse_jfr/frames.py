"""
frames.py

Renders stack frames and whole stacks into collapsed-stack paths:

    <thread>;<root frame>;...;<leaf frame>

A frame renders as `<package/with/slashes>/<Type>.<method>`.
"""

import logging
from collections import namedtuple

from collapse_jfr.errors import FrameFormatError

logger = logging.getLogger(__name__)

# Frames whose method descriptor matches `descriptor` drop the `<Type>.`
# qualification when `omit_type` is set and get `suffix` appended.
DescriptorRule = namedtuple("DescriptorRule", ["descriptor", "omit_type", "suffix"])

DEFAULT_DESCRIPTOR_RULES = (
    DescriptorRule("()L;", True, ""),
    DescriptorRule("(Lk;)L;", False, "_[k]"),
)

IN_TLAB_MARKER = "_[k]"
OUTSIDE_TLAB_MARKER = "_[i]"
LOCK_MARKER = "_[i]"


class FrameFormatter:
    def __init__(self, rules=DEFAULT_DESCRIPTOR_RULES):
        self._rules = {rule.descriptor: rule for rule in rules}

    def format(self, frame) -> str:
        method = frame.method
        try:
            package = method.package_name
        except FrameFormatError:
            logger.error("Cannot resolve package of frame %s", method.name)
            raise
        rule = self._rules.get(method.descriptor)

        parts = []
        if package:
            parts.append(package)
            parts.append("/")
        type_name = method.type_name
        if type_name and not (rule and rule.omit_type):
            parts.append(type_name)
            parts.append(".")
        parts.append(method.name)
        if rule and rule.suffix:
            parts.append(rule.suffix)
        return "".join(parts)


def flatten_stack(frames, thread_name, formatter: FrameFormatter) -> str:
    """Join leaf-first `frames` into a root-first path prefixed by the thread."""
    body = ";".join(formatter.format(frames[i]) for i in range(len(frames) - 1, -1, -1))
    if thread_name is not None:
        return f"{thread_name};{body}"
    return body


def flatten_event(event, formatter: FrameFormatter):
    """Flatten an event's stack, or None when the event has no stack trace.

    An empty stack trace flattens to the thread prefix alone.
    """
    if not event.has_stack_trace():
        return None
    return flatten_stack(event.stack_frames(), event.thread(), formatter)


def with_owner(stack: str, owner, marker: str) -> str:
    """Append the synthetic `<owner type>_[x]` segment to a path."""
    return f"{stack};{owner.full_name}{marker}"
