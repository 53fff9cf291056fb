import threading

from .mediator import LLMError, LLMMediator

_MEDIATOR: LLMMediator | None = None
_MEDIATOR_LOCK = threading.Lock()


def get_mediator() -> LLMMediator:
    global _MEDIATOR
    if _MEDIATOR is None:
        with _MEDIATOR_LOCK:
            if _MEDIATOR is None:
                _MEDIATOR = LLMMediator()
    return _MEDIATOR


__all__ = ["LLMError", "LLMMediator", "get_mediator"]
