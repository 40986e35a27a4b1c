"""tapbook -- declarative UI automation playbooks for the iOS Simulator."""

__version__ = "0.3.0"
