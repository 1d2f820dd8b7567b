"""Protocol adapters feeding events into monitors."""

from .base import Adapter, Session
