from .hub_listener import HubEventListener, HubListener

__all__ = ["HubEventListener", "HubListener"]
