from abc import ABC, abstractmethod
from typing import Any

from subwatch.models import JobKind


class JobSource(ABC):
    """Where raw job records come from.

    ``fetch`` returns the untyped payload: a bare list, ``{"content": [...]}``
    or ``{"jobs": [...]}``. A rejected request raises FetchError.
    """

    name: str = "source"

    @abstractmethod
    def fetch(self, kind: JobKind, token: str, identity: str, cookie_string: str = "") -> Any:
        pass
