"""Adapters package entry."""
from demakai.adapters.base_channel_adapter import ChannelAdapter
from demakai.adapters.gateway_adapter import WhatsAppGatewayAdapter

__all__ = ["ChannelAdapter", "WhatsAppGatewayAdapter"]
