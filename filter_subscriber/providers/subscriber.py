from abc import ABC, abstractmethod


class UnsupportedSubscriberError(Exception):
    """Raised when a subscription has no fallback strategy."""


class Subscriber(ABC):
    """A source of events for one provider event key.

    A provider creates one subscriber per key when its first listener is
    added, and stops it again once the last listener is removed.
    """

    @abstractmethod
    def start(self) -> None:
        ...

    @abstractmethod
    def stop(self) -> None:
        ...

    @abstractmethod
    def pause(self, drop_while_paused: bool = False) -> None:
        ...

    def resume(self) -> None:
        self.start()
