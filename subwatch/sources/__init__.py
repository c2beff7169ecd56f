from .base import JobSource
from .mock import MockSource
from .portal import PortalJobSource

from subwatch.config import Settings
from subwatch.log import get_logger

log = get_logger(__name__)

__all__ = ["JobSource", "MockSource", "PortalJobSource", "get_source"]


def get_source(settings: Settings) -> JobSource:
    if settings.portal.source == "mock" or not settings.portal.base_url:
        log.info("Using MockSource (no portal configured)")
        return MockSource()

    # Long-term listings are only worth the second request when they can pass the filter
    wants_long_term = settings.rules.include_long_term is not False
    log.info("Using portal source at %s", settings.portal.base_url)
    return PortalJobSource(settings.portal, include_long_term=wants_long_term)
