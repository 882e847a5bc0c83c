"""SMS over XMPP: XEP-0114 component gateway between XMPP users and SMS carriers."""

__version__ = "0.1.0"
