"""Provider adapters for listing live cloud resources."""

from cam_sync.inventory.adapters.base import AdapterFactory, CloudAdapter, default_adapter_factory

__all__ = ["AdapterFactory", "CloudAdapter", "default_adapter_factory"]
