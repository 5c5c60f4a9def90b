"""
Services package for the fight league engine.
"""

from .base import BaseService
from .configuration import ConfigurationService
from .event_bus import EventBus, EventType, LeagueEvent

__all__ = ['BaseService', 'ConfigurationService', 'EventBus', 'EventType', 'LeagueEvent']
