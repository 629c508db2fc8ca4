"""
Chat client package exports.
"""
from client.chat_session import ChatSession
from client.countdown import format_countdown, countdown_until_reset, describe_rate_limit
from client.sse_decoder import StreamDecoder

__all__ = [
    'ChatSession',
    'StreamDecoder',
    'format_countdown',
    'countdown_until_reset',
    'describe_rate_limit'
]
