"""
MQTT Publishers
==============

Bounded Context: Message Production

Publishers for sending transition messages to the MQTT broker.

Design:
- BasePublisher: Abstract base with connection management
- TransitionEventPublisher: Publishes entry/exit batches (also an alert sink)
- Separation of concerns: Publishers format, broker publishes

Public API
----------
    BasePublisher: Abstract publisher (for custom publishers)
    TransitionEventPublisher: Transition message publisher
"""

from .base import BasePublisher
from .transition import TransitionEventPublisher

__all__ = [
    'BasePublisher',
    'TransitionEventPublisher',
]
