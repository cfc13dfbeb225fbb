"""Message model and tick scheduler."""

from brokersim.stack.message import (
    BEventDelivery,
    BEventMatching,
    BLocationUpdate,
    BROKER_MESSAGE_KINDS,
    BrokerMessage,
    BSubscriptionRemoval,
    BSubscriptionUpdate,
    CEventDelivery,
    CEventMatching,
    CLIENT_MESSAGE_KINDS,
    CLocationUpdate,
    ClientMessage,
    CSubscriptionRemoval,
    CSubscriptionUpdate,
    Message,
    PROCESSING_ORDER,
)
from brokersim.stack.stack import Stack
from brokersim.stack.statistics import MessageCounter, StorelessStatistics
from brokersim.stack.target import BTarget, CTarget

__all__ = [
    'BEventDelivery',
    'BEventMatching',
    'BLocationUpdate',
    'BROKER_MESSAGE_KINDS',
    'BrokerMessage',
    'BSubscriptionRemoval',
    'BSubscriptionUpdate',
    'BTarget',
    'CEventDelivery',
    'CEventMatching',
    'CLIENT_MESSAGE_KINDS',
    'CLocationUpdate',
    'ClientMessage',
    'CSubscriptionRemoval',
    'CSubscriptionUpdate',
    'CTarget',
    'Message',
    'MessageCounter',
    'PROCESSING_ORDER',
    'Stack',
    'StorelessStatistics',
]
