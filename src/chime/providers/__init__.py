"""Delivery providers."""

from chime.providers.telegram import TelegramDelivery, split_message

__all__ = ["TelegramDelivery", "split_message"]
