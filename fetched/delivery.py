"""
The ways an outcome can reach the caller.

Each `Delivery` wraps the executor's two continuations. The client picks one
per request from the `RequestType` resolved during normalization.
"""

from abc import ABC, abstractmethod
from concurrent.futures import Future
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from .executor import RequestExecutor
from .model import OutcomeKind, RequestOptions, RequestType
from . import outcome


EVENT_NAMES = frozenset(kind.value for kind in OutcomeKind)


class Emitter:
    """
    Emits the outcome of one request as a `request-ok`, `request-fail` or
    `request-error` event.

    The request runs on another thread and may finish before the caller gets
    to register handlers, so the emitted event is remembered: a handler added
    for it afterwards is called straight away.
    """

    def __init__(self) -> None:
        self.__handlers = {name: [] for name in EVENT_NAMES}  # type: Dict[str, List[Callable]]
        self.__emitted = None  # type: Optional[Tuple[str, Any]]
        self.__lock = threading.Lock()

    def _check(self, event: str) -> None:
        if event not in EVENT_NAMES:
            raise ValueError('Unknown event: {}'.format(event))

    def on(self, event: str, handler: Callable[[Any], Any]) -> 'Emitter':
        self._check(event)
        with self.__lock:
            self.__handlers[event].append(handler)
            emitted = self.__emitted
        if emitted is not None and emitted[0] == event:
            handler(emitted[1])
        return self

    def off(self, event: str, handler: Callable[[Any], Any]) -> 'Emitter':
        self._check(event)
        with self.__lock:
            if handler in self.__handlers[event]:
                self.__handlers[event].remove(handler)
        return self

    @property
    def emitted(self) -> Optional[str]:
        """
        The name of the event emitted so far, if any.
        """
        return None if self.__emitted is None else self.__emitted[0]

    def emit(self, event: str, payload) -> None:
        self._check(event)
        with self.__lock:
            if self.__emitted is not None:
                raise RuntimeError('An outcome was already emitted: {}'.format(self.__emitted[0]))
            self.__emitted = (event, payload)
            handlers = list(self.__handlers[event])
        for handler in handlers:
            handler(payload)


class Delivery(ABC):
    @abstractmethod
    def deliver(self, executor: RequestExecutor, options: RequestOptions):
        """
        Start the request and hand back whatever the caller gets to hold.
        """


class CallbackDelivery(Delivery):
    """
    Calls `callback(payload, kind)` once, with the kind as its string label.
    """

    def __init__(self, callback: Callable[[Any, str], Any]) -> None:
        self.callback = callback

    def deliver(self, executor: RequestExecutor, options: RequestOptions) -> None:
        executor.execute(
            options,
            lambda response: self.callback(response, outcome.classify(response).value),
            lambda error: self.callback(error, OutcomeKind.ERROR.value),
        )


class EventDelivery(Delivery):
    def deliver(self, executor: RequestExecutor, options: RequestOptions) -> Emitter:
        emitter = Emitter()
        executor.execute(
            options,
            lambda response: emitter.emit(outcome.classify(response).value, response),
            lambda error: emitter.emit(OutcomeKind.ERROR.value, error),
        )
        return emitter


class PromiseDelivery(Delivery):
    """
    Settles a future with the response, or with the transport error.

    A response with a failing status still resolves the future. Callers tell
    the two apart by `status_code`.
    """

    def __init__(self, future_class=Future) -> None:
        self.future_class = future_class

    def deliver(self, executor: RequestExecutor, options: RequestOptions) -> Future:
        future = self.future_class()
        executor.execute(options, future.set_result, future.set_exception)
        return future


class OutcomeDelivery(Delivery):
    """
    Resolves a future with an `Outcome`, for OK, FAIL and ERROR alike.
    """

    def deliver(self, executor: RequestExecutor, options: RequestOptions) -> Future:
        future = Future()
        executor.execute(
            options,
            lambda response: future.set_result(outcome.from_response(response)),
            lambda error: future.set_result(outcome.from_error(error)),
        )
        return future


def for_request_type(request_type: RequestType, target=None) -> Delivery:
    if request_type is RequestType.CALLBACK:
        return CallbackDelivery(target)
    if request_type is RequestType.PROMISE:
        return PromiseDelivery(target or Future)
    if request_type is RequestType.OUTCOME:
        return OutcomeDelivery()
    return EventDelivery()
