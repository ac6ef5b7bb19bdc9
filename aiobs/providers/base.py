"""Provider adapter ABC — translates a provider SDK call into a ``ProviderEvent``."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from aiobs.collector import Collector


class BaseProvider(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def is_available(self) -> bool:
        """True when the provider can be installed in this process."""

    @abstractmethod
    def install(self, collector: Collector) -> Callable[[], None] | None:
        """Start recording calls into ``collector``; return an uninstall callable."""
