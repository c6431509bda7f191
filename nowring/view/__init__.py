from .host import QtScheduler, TimelineHost

__all__ = ["QtScheduler", "TimelineHost"]
